"""Simulating data and estimating parameters for a dynamic occupancy model.

The model is the colonization-extinction model of MacKenzie et al. (2003), as
fit by the unmarked function colext. The simulation follows Kery and Royle
(2021) AHM Vol. 2, Chapter 4. Every estimation method shares the same forward
algorithm likelihood in forward.py.

Typical usage example:

    do = DynamicOccupancy(survey_count=3, season_count=5, seed=1)
    sim = do.simulate(site_count=250, psi=0.4, p=0.5, gamma=0.2, epsilon=0.3)

    mle = do.estimate_mle(sim['detection_history'])
    idata = do.estimate_bayes(sim['detection_history'])
"""

import logging

import numpy as np
import pandas as pd
import pymc as pm
import arviz as az
from pytensor import tensor as pt
from scipy.optimize import minimize

from dynocc.forward import (ForwardLikelihood, PARAMETER_NAMES, logistic,
                            real_parameters)

# critical value for the 95 percent wald interval
Z_95 = 1.959963984540054

class DynamicOccupancy:
    """Dynamic occupancy model with constant psi, p, gamma, and epsilon.

    Attributes:
        survey_count: J, the number of surveys per season
        season_count: K, the number of seasons
        rng: np.random.Generator used by the simulator
    """

    def __init__(self, survey_count: int, season_count: int,
                 seed: int = None) -> None:
        self.survey_count = survey_count
        self.season_count = season_count
        self.rng = np.random.default_rng(seed)

    @property
    def occasion_count(self) -> int:
        return self.survey_count * self.season_count

    def likelihood(self, history: np.ndarray,
                   weights: np.ndarray = None) -> ForwardLikelihood:
        '''Forward algorithm likelihood for the history.'''
        return ForwardLikelihood(history, self.survey_count, self.season_count,
                                 weights=weights)

    def estimate_mle(self, history: np.ndarray, weights: np.ndarray = None,
                     use_gradient: bool = True,
                     theta_start: np.ndarray = None) -> pd.DataFrame:
        """Estimate the MLE for the dynamic occupancy model.

        Args:
            history: (site_count, J * K) matrix of detections
            weights: number of sites sharing each history, defaults to one
            use_gradient: if True, BFGS uses the exact gradient from pytensor,
              otherwise scipy approximates it with finite differences
            theta_start: starting values on the logit scale
        Returns:
            pd.DataFrame containing the logit scale estimates and standard
              errors, along with the estimates and 95% intervals on the
              probability scale
        """
        if theta_start is None:
            theta_start = np.zeros(len(PARAMETER_NAMES))

        fl = self.likelihood(history, weights)

        if use_gradient:
            res = minimize(fl.negative_loglik_and_grad, theta_start,
                           method='BFGS', jac=True)
        else:
            res = minimize(fl.negative_loglik, theta_start, method='BFGS')

        if not res.success:
            logging.warning(f'BFGS did not converge: {res.message}')
        logging.debug(f'BFGS finished after {res.nit} iterations, '
                      f'nll = {res.fun}')

        se = np.sqrt(np.diag(res.hess_inv))

        # put results in a dataframe
        results = pd.DataFrame({
            'parameter': PARAMETER_NAMES,
            'est_logit': res.x,
            'se': se
        })
        results['estimate'] = list(real_parameters(res.x).values())
        results['lower'] = list(real_parameters(res.x - Z_95 * se).values())
        results['upper'] = list(real_parameters(res.x + Z_95 * se).values())
        results.attrs['nll'] = res.fun
        results.attrs['converged'] = res.success

        return results

    def compile_pymc_model(self, history: np.ndarray,
                           weights: np.ndarray = None) -> pm.Model:
        """Bayesian formulation of the dynamic occupancy model.

        The latent states are marginalized with the forward algorithm, rather
        than sampled as in the JAGS formulation, so NUTS can be used. The
        Logistic(0, 1) priors on the logit scale parameters are equivalent to
        Uniform(0, 1) priors on the probabilities.
        """
        fl = self.likelihood(history, weights)

        with pm.Model() as colext:

            logits = [
                pm.Logistic(f'logit_{name}', mu=0., s=1.)
                for name in PARAMETER_NAMES
            ]
            theta = pt.stack(logits)

            # probabilities for reporting
            for name, logit in zip(PARAMETER_NAMES, logits):
                pm.Deterministic(name, logistic(logit))

            nll = fl.build_graph(theta)['nll']
            pm.Potential('loglik', -nll)

        return colext

    def estimate_bayes(self, history: np.ndarray, weights: np.ndarray = None,
                       sample_kwargs: dict = None, return_idata: bool = True):
        '''Sample from the posterior with NUTS.'''
        model = self.compile_pymc_model(history, weights)

        with model:
            if sample_kwargs:
                idata = pm.sample(**sample_kwargs)
            else:
                idata = pm.sample()

        if return_idata:
            return idata
        else:
            return summarize_idata(idata)

    def projected_occupancy(self, psi: float, gamma: float,
                            epsilon: float) -> np.ndarray:
        '''Expected proportion of sites occupied in each season.'''
        occupancy = np.zeros(self.season_count)
        occupancy[0] = psi
        for k in range(1, self.season_count):
            occupancy[k] = (occupancy[k - 1] * (1 - epsilon)
                            + (1 - occupancy[k - 1]) * gamma)
        return occupancy

    def simulate(self, site_count: int, psi: float, p: float, gamma: float,
                 epsilon: float) -> dict:
        """Simulate detection histories under the dynamic occupancy model.

        Args:
            site_count: number of sites surveyed
            psi: probability a site is occupied in the first season
            p: probability of detection at an occupied site
            gamma: probability of colonization between seasons
            epsilon: probability of extinction between seasons
        Returns:
            dict with the (site_count, J * K) detection history, the
              (site_count, K) true occupancy z, and the number of occupied
              sites in each season
        """
        z = np.zeros((site_count, self.season_count), dtype=int)
        z[:, 0] = self.rng.binomial(1, psi, site_count)

        # occupied sites persist with 1 - epsilon, others are colonized
        for k in range(1, self.season_count):
            occupied_next = z[:, k - 1] * (1 - epsilon) \
                + (1 - z[:, k - 1]) * gamma
            z[:, k] = self.rng.binomial(1, occupied_next)

        # surveys within a season share the season's state
        season_shape = (site_count, self.season_count, self.survey_count)
        detection_prob = np.broadcast_to(z[:, :, None], season_shape)
        detection_prob = detection_prob.reshape(site_count,
                                                self.occasion_count) * p
        detection_history = self.rng.binomial(1, detection_prob)

        return {
            'detection_history': detection_history,
            'z': z,
            'occupied_count': z.sum(axis=0)
        }

def summarize_idata(idata: az.InferenceData) -> pd.DataFrame:
    '''Posterior summary in the same layout as the MLE table.'''
    summary = az.summary(idata, var_names=list(PARAMETER_NAMES),
                         hdi_prob=0.95)
    logit_summary = az.summary(
        idata, var_names=[f'logit_{name}' for name in PARAMETER_NAMES]
    )

    results = pd.DataFrame({
        'parameter': PARAMETER_NAMES,
        'est_logit': logit_summary['mean'].values,
        'se': logit_summary['sd'].values,
        'estimate': summary['mean'].values,
        'lower': summary['hdi_2.5%'].values,
        'upper': summary['hdi_97.5%'].values,
        'r_hat': summary['r_hat'].values
    })

    return results
