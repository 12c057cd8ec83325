import numpy as np
import pandas as pd

from dynocc.colext import DynamicOccupancy, summarize_idata
from dynocc.utils import condense_history, season_view

debug_kwargs = {
    'site_count': 1000,
    'psi': 0.4,
    'p': 0.5,
    'gamma': 0.2,
    'epsilon': 0.3
}

sample_kwargs = {
    'draws': 200,
    'tune': 200,
    'chains': 2,
    'cores': 1,
    'progressbar': False,
    'random_seed': 7
}

class TestSimulator:

    survey_count = 3
    season_count = 5

    def test_simulate(self):
        do = DynamicOccupancy(self.survey_count, self.season_count, seed=42)
        results = do.simulate(**debug_kwargs)

        history = results['detection_history']
        z = results['z']

        assert history.shape == (1000, 15)
        assert do.occasion_count == 15
        assert z.shape == (1000, 5)
        assert np.array_equal(results['occupied_count'], z.sum(axis=0))

        # no detections at unoccupied sites
        detected = season_view(history, self.survey_count).any(axis=2)
        assert not (detected & (z == 0)).any()

    def test_seed(self):
        first = DynamicOccupancy(3, 5, seed=42).simulate(**debug_kwargs)
        second = DynamicOccupancy(3, 5, seed=42).simulate(**debug_kwargs)

        assert np.array_equal(first['detection_history'],
                              second['detection_history'])

    def test_closed_population(self):
        do = DynamicOccupancy(2, 4, seed=1)
        results = do.simulate(site_count=50, psi=0.5, p=0.5, gamma=0.,
                              epsilon=0.)
        z = results['z']

        assert (z == z[:, [0]]).all()

    def test_projected_occupancy(self):
        do = DynamicOccupancy(3, 3)
        occupancy = do.projected_occupancy(psi=0.5, gamma=0.2, epsilon=0.3)

        assert np.allclose(occupancy, [0.5, 0.45, 0.425])

    def test_equilibrium(self):
        do = DynamicOccupancy(3, 6)
        occupancy = do.projected_occupancy(psi=0.4, gamma=0.2, epsilon=0.3)

        # gamma / (gamma + epsilon) is the equilibrium
        assert np.allclose(occupancy, 0.4)

class TestEstimator:

    do = DynamicOccupancy(survey_count=3, season_count=5, seed=42)
    sim = do.simulate(**debug_kwargs)
    history = sim['detection_history']

    results = do.estimate_mle(history)

    def test_estimate_mle(self):

        assert isinstance(self.results, pd.DataFrame)
        assert list(self.results.parameter) == ['psi', 'p', 'gamma',
                                                'epsilon']

        truth = [debug_kwargs[k] for k in ('psi', 'p', 'gamma', 'epsilon')]
        assert np.allclose(self.results.estimate.values, truth, atol=0.1)

        assert (self.results.se > 0).all()
        assert (self.results.lower < self.results.estimate).all()
        assert (self.results.upper > self.results.estimate).all()
        assert self.results.attrs['converged']

    def test_numeric_gradient(self):
        numeric = self.do.estimate_mle(self.history, use_gradient=False)

        assert np.allclose(numeric.estimate.values,
                           self.results.estimate.values, atol=1e-3)

    def test_condensed(self):
        history, counts = condense_history(self.history)
        condensed = self.do.estimate_mle(history, counts)

        assert history.shape[0] < self.history.shape[0]
        assert np.allclose(condensed.est_logit.values,
                           self.results.est_logit.values, atol=1e-4)
        assert np.isclose(condensed.attrs['nll'], self.results.attrs['nll'])

class TestBayes:

    do = DynamicOccupancy(survey_count=3, season_count=3, seed=11)
    sim = do.simulate(site_count=200, psi=0.6, p=0.6, gamma=0.3, epsilon=0.2)
    history = sim['detection_history']

    def test_model_logp(self):
        model = self.do.compile_pymc_model(self.history)
        logp = model.compile_logp()

        point = {f'logit_{name}': np.array(0.)
                 for name in ('psi', 'p', 'gamma', 'epsilon')}

        # Logistic(0, 1) density at zero is 1 / 4 for each parameter
        nll = self.do.likelihood(self.history).negative_loglik(np.zeros(4))
        should_be = 4 * np.log(0.25) - nll

        assert np.isclose(logp(point), should_be)

    def test_estimate_bayes(self):
        idata = self.do.estimate_bayes(self.history,
                                       sample_kwargs=sample_kwargs)
        summary = summarize_idata(idata)
        mle = self.do.estimate_mle(self.history)

        assert list(summary.columns[:6]) == list(mle.columns)
        assert np.allclose(summary.estimate.values, mle.estimate.values,
                           atol=0.1)
