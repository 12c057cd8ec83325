"""Timing and comparing the different ways of fitting the same model."""

import time
import logging

import pandas as pd
from tqdm import tqdm

def time_fits(fitters: dict, repetitions: int = 3,
              progressbar: bool = True):
    """Time each fitting method over several repetitions.

    Args:
        fitters: maps the method name to a callable with no arguments that
          fits the model and returns its estimates
        repetitions: number of times each method is run
    Returns:
        tuple (timings, estimates). timings is a pd.DataFrame with one row per
          method and repetition. estimates maps the method name to the output
          of its final repetition.
    """
    if repetitions < 1:
        raise ValueError('repetitions must be at least one')

    rows = []
    estimates = {}
    for method, fit in fitters.items():
        for repetition in tqdm(range(repetitions), desc=method,
                               disable=not progressbar):
            start = time.perf_counter()
            estimates[method] = fit()
            seconds = time.perf_counter() - start

            logging.info(f'{method} repetition {repetition} took '
                         f'{seconds:.3f} seconds')
            rows.append({'method': method, 'repetition': repetition,
                         'seconds': seconds})

    timings = pd.DataFrame(rows, columns=['method', 'repetition', 'seconds'])
    return timings, estimates

def summarize_timings(timings: pd.DataFrame) -> pd.DataFrame:
    '''Min, mean, median, and max time per method, like microbenchmark.'''
    summary = (timings.groupby('method', sort=False)['seconds']
               .agg(['min', 'mean', 'median', 'max'])
               .reset_index())

    # relative to the fastest method
    summary['relative'] = summary['median'] / summary['median'].min()

    return summary.sort_values('median').reset_index(drop=True)

def compare_estimates(estimates: dict, truth: dict) -> pd.DataFrame:
    """Stack the estimates from each method next to the true values.

    Args:
        estimates: maps the method name to a pd.DataFrame with 'parameter'
          and 'estimate' columns
        truth: maps the parameter name to its true value
    """
    frames = []
    for method, results in estimates.items():
        frame = results.copy()
        frame.insert(0, 'method', method)
        frames.append(frame)

    comparison = pd.concat(frames, ignore_index=True)
    comparison['truth'] = comparison['parameter'].map(truth)
    comparison['error'] = comparison['estimate'] - comparison['truth']

    return comparison
