"""Simulates one dynamic occupancy dataset for a scenario.

The settings come from config/<scenario>.yaml, falling back on
config/default.yaml. The dataset is written to sim_data/<scenario>.
"""
import argparse
import json
import os
import logging
import numpy as np

from dynocc.colext import DynamicOccupancy
from dynocc.config import load_config, scenario_path, DEFAULT_CONFIG_PATH

def parse():
    '''Parses arguments from the command line'''
    parser = argparse.ArgumentParser(description="Simulating occupancy data")
    parser.add_argument('-s', "--scenario", default="debug")
    parser.add_argument('--overwrite', action='store_true')
    return parser.parse_args()

class NumpyEncoder(json.JSONEncoder):
    '''Easy conversion between numpy and json.'''
    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.generic):
            return obj.item()
        return json.JSONEncoder.default(self, obj)

def main():
    args = parse()
    simulate_scenario(args.scenario, overwrite=args.overwrite)
    return None

def simulate_scenario(scenario, overwrite=False, data_root='sim_data'):
    """Simulate the dataset for a scenario and save it as json."""

    cfg = load_config(scenario_path(scenario), DEFAULT_CONFIG_PATH)

    # don't overwrite, unless we're writing the debug scenario
    scenario_dir = f'{data_root}/{scenario}'
    if os.path.isdir(scenario_dir):
        if scenario != 'debug' and not overwrite:
            raise FileExistsError(f'Directory: {scenario_dir} already exists.')
    else:
        os.makedirs(scenario_dir)

    logging.basicConfig(filename=f'{scenario_dir}/simulate.log',
                        level=logging.DEBUG)
    logging.debug(f'Simulating data for scenario: {scenario}')

    model = DynamicOccupancy(survey_count=cfg.survey_count,
                             season_count=cfg.season_count, seed=cfg.seed)
    sim_results = model.simulate(site_count=cfg.site_count, psi=cfg.psi,
                                 p=cfg.p, gamma=cfg.gamma,
                                 epsilon=cfg.epsilon)

    path = f'{scenario_dir}/dataset.json'
    with open(path, 'w') as f:
        json.dump(sim_results, f, cls=NumpyEncoder)

    # save the settings as well, including the expected occupancy
    settings = {
        'site_count': cfg.site_count,
        'survey_count': cfg.survey_count,
        'season_count': cfg.season_count,
        'psi': cfg.psi,
        'p': cfg.p,
        'gamma': cfg.gamma,
        'epsilon': cfg.epsilon,
        'seed': cfg.seed,
        'projected_occupancy': model.projected_occupancy(
            cfg.psi, cfg.gamma, cfg.epsilon
        )
    }
    path = f'{scenario_dir}/settings.json'
    with open(path, 'w') as f:
        json.dump(settings, f, cls=NumpyEncoder)

    occupied = sim_results['occupied_count']
    logging.debug(f'occupied sites per season: {occupied}')
    print(f'Simulated {cfg.site_count} sites for {scenario}')

    return sim_results

if __name__ == '__main__':
    main()
