"""Fits the dynamic occupancy model several ways and benchmarks each fit.

Expects sim_data/<scenario>/dataset.json, written by simulate.py, unless a
Mark .inp file of surveyed histories is given with --inp. Results are saved to
results/<scenario>.
"""
import argparse
import json
import os
import logging

import numpy as np
import pandas as pd

from dynocc.benchmark import time_fits, summarize_timings, compare_estimates
from dynocc.colext import DynamicOccupancy, summarize_idata
from dynocc.config import load_config, scenario_path, DEFAULT_CONFIG_PATH
from dynocc.utils import condense_history, naive_occupancy, read_inp

METHODS = ('mle_gradient', 'mle_numeric', 'bayes')

def parse():
    parser = argparse.ArgumentParser(description="Benchmarking colext fits")
    parser.add_argument('-s', "--scenario", default="debug")
    parser.add_argument('-m', '--methods', nargs='+', default=None)
    parser.add_argument('-i', '--inp', default=None,
                        help='Mark .inp file of detection histories')
    return parser.parse_args()

def main():

    args = parse()

    results_dir = f'results/{args.scenario}'
    os.makedirs(results_dir, exist_ok=True)

    logging.basicConfig(filename=f'{results_dir}/estimate.log',
                        level=logging.INFO)

    benchmark_scenario(args.scenario, results_dir, methods=args.methods,
                       inp_path=args.inp)

    return None

def benchmark_scenario(scenario, results_dir, methods=None,
                       data_root='sim_data', inp_path=None):

    logging.info(f'Benchmarking {scenario}...')
    print(f'Benchmarking {scenario}...')

    cfg = load_config(scenario_path(scenario), DEFAULT_CONFIG_PATH)

    if inp_path is not None:
        # survey data, the counts are already the per-history weights
        history, counts = read_inp(inp_path)
        truth = {}
        logging.info(f'read {history.shape[0]} histories for '
                     f'{counts.sum()} sites from {inp_path}')
    else:
        history, counts = load_simulated(f'{data_root}/{scenario}')
        truth = {k: cfg[k] for k in ('psi', 'p', 'gamma', 'epsilon')}

    naive = pd.DataFrame({
        'season': np.arange(cfg.season_count),
        'naive_occupancy': naive_occupancy(history, cfg.survey_count, counts)
    })
    naive.to_csv(f'{results_dir}/naive_occupancy.csv', index=False)

    model = DynamicOccupancy(survey_count=cfg.survey_count,
                             season_count=cfg.season_count)

    sample_kwargs = {
        'draws': cfg.draws,
        'tune': cfg.tune,
        'chains': cfg.chains,
        'cores': cfg.cores,
        'progressbar': False,
        'random_seed': cfg.seed
    }
    fitters = build_fitters(model, history, counts, sample_kwargs,
                            methods or cfg.methods)

    timings, estimates = time_fits(fitters, repetitions=cfg.repetitions)

    comparison = compare_estimates(estimates, truth)
    timing_summary = summarize_timings(timings)

    timings.to_csv(f'{results_dir}/timings.csv', index=False)
    timing_summary.to_csv(f'{results_dir}/timing_summary.csv', index=False)
    comparison.to_csv(f'{results_dir}/estimates.csv', index=False)

    print(timing_summary.to_string(index=False))

    return timing_summary, comparison

def load_simulated(data_dir):
    '''Condensed histories and their counts from a simulated dataset.'''
    data_path = f'{data_dir}/dataset.json'
    if not os.path.isfile(data_path):
        raise OSError(f'{data_path} is missing, run simulate.py first')

    with open(data_path, 'r') as f:
        dataset = json.load(f)
    detection_history = np.asarray(dataset['detection_history'])

    # pool identical histories, the likelihood weights them by their count
    history, counts = condense_history(detection_history)
    logging.info(f'{detection_history.shape[0]} sites condensed into '
                 f'{history.shape[0]} unique histories')

    return history, counts

def build_fitters(model, history, counts, sample_kwargs, methods):
    '''Callables that fit the model one way each.'''
    unknown = set(methods) - set(METHODS)
    if unknown:
        raise ValueError(f'unknown methods {sorted(unknown)}, expected some '
                         f'of {METHODS}')

    def fit_bayes():
        idata = model.estimate_bayes(history, counts,
                                     sample_kwargs=sample_kwargs)
        return summarize_idata(idata)

    fitters = {
        'mle_gradient': lambda: model.estimate_mle(history, counts,
                                                   use_gradient=True),
        'mle_numeric': lambda: model.estimate_mle(history, counts,
                                                  use_gradient=False),
        'bayes': fit_bayes
    }

    return {m: fitters[m] for m in methods}

if __name__ == '__main__':
    main()
