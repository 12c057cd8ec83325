"""Forward-algorithm likelihood for the dynamic (multi-season) occupancy model.

The latent state of each site is unoccupied (0) or occupied (1). Occupancy is
closed within a season and changes between seasons through colonization
(gamma) and extinction (epsilon). Detections are observed with probability p
at occupied sites and never at unoccupied ones.

Conventions used throughout:

    * occasions are 0-based and season-major, i.e., survey j of season k is
      occasion k * J + j
    * the emission matrix is indexed [state, symbol], so B[:, y] is the vector
      of probabilities of observing y given each state
    * transition t moves the forward vector from occasion t to t + 1, and is
      the season transition only at primary occasions (last survey of a season
      other than the final one)

The graph is written once in pytensor, which gives the exact value, the
gradient, and an expression that PyMC can sample from.

Typical usage example:

    fl = ForwardLikelihood(history, survey_count=3, season_count=5)
    nll, grad = fl.negative_loglik_and_grad(np.zeros(4))
"""

import numpy as np
import pytensor
from pytensor import tensor as pt
from scipy.special import expit

PARAMETER_NAMES = ('psi', 'p', 'gamma', 'epsilon')

def logistic(x):
    '''Inverse logit of a tensor.'''
    return 1 / (1 + pt.exp(-x))

def real_parameters(theta) -> dict:
    '''Map logit scale parameters onto the probability scale.'''
    theta = np.asarray(theta, dtype=float)
    if theta.shape != (len(PARAMETER_NAMES),):
        raise ValueError(f'theta must have length {len(PARAMETER_NAMES)}')
    return dict(zip(PARAMETER_NAMES, expit(theta)))

def occasion_partition(survey_count: int, season_count: int):
    """Split the transitions into primary and secondary occasions.

    Args:
        survey_count: J, the number of surveys per season
        season_count: K, the number of seasons
    Returns:
        tuple of np.ndarrays (primary, secondary). Together they partition
          {0, ..., J * K - 2}, the occasions that have an outgoing transition.
    """
    if survey_count < 1 or season_count < 1:
        raise ValueError('survey_count and season_count must be positive')

    occasion_count = survey_count * season_count
    transitions = np.arange(occasion_count - 1)

    # last survey of each season, except the final season
    is_primary = (transitions + 1) % survey_count == 0
    return transitions[is_primary], transitions[~is_primary]

def emission_matrix(p):
    '''Detection probabilities, B[state, symbol].'''
    return pt.stack([
        pt.stack([pt.constant(1.), pt.constant(0.)]),
        pt.stack([1 - p, p])
    ])

def season_transition_matrix(gamma, epsilon):
    '''Transition between seasons, PHI[state_from, state_to].'''
    return pt.stack([
        pt.stack([1 - gamma, gamma]),
        pt.stack([epsilon, 1 - epsilon])
    ])

def transition_matrices(gamma, epsilon, primary_occasions, occasion_count):
    """Per-occasion transition matrices.

    Returns:
        list with one 2x2 tensor per occasion 0..occasion_count - 2. Secondary
          occasions carry the identity since state is closed within a season.
    """
    season = season_transition_matrix(gamma, epsilon)
    identity = pt.eye(2)
    primary = set(int(i) for i in primary_occasions)
    return [season if t in primary else identity
            for t in range(occasion_count - 1)]

class ForwardLikelihood:
    """Negative log likelihood of a fixed set of detection histories.

    The dataset is validated once and baked into the pytensor graph as a
    constant. The compiled functions are created lazily on first use.

    Attributes:
        history: (site_count, J * K) integer array of detections
        survey_count: J, surveys per season
        season_count: K, seasons
        weights: per-site multiplier, e.g., the count of sites sharing a history
        primary_occasions: occasions followed by a season transition
        secondary_occasions: occasions followed by the identity
    """

    def __init__(self, history, survey_count: int, season_count: int,
                 weights=None, primary_occasions=None,
                 secondary_occasions=None) -> None:

        history = np.asarray(history)
        if history.ndim != 2:
            raise ValueError('history must be a (site_count, occasion_count) '
                             'array')

        site_count, occasion_count = history.shape
        if occasion_count != survey_count * season_count:
            raise ValueError(
                f'history has {occasion_count} occasions but '
                f'{survey_count} surveys x {season_count} seasons were given'
            )
        if site_count == 0:
            raise ValueError('history has no sites')
        if not np.isin(history, (0, 1)).all():
            raise ValueError('history may only contain 0 and 1')

        if weights is None:
            weights = np.ones(site_count)
        weights = np.asarray(weights, dtype=float)
        if weights.shape != (site_count,):
            raise ValueError(f'expected {site_count} weights, one per site, '
                             f'got shape {weights.shape}')
        if not (np.isfinite(weights) & (weights > 0)).all():
            raise ValueError('weights must be finite and positive')

        if primary_occasions is None:
            primary_occasions, _ = occasion_partition(survey_count,
                                                      season_count)
        primary_occasions = np.unique(np.asarray(primary_occasions, dtype=int))
        if secondary_occasions is None:
            transitions = np.arange(occasion_count - 1)
            secondary_occasions = np.setdiff1d(transitions, primary_occasions)
        secondary_occasions = np.unique(
            np.asarray(secondary_occasions, dtype=int)
        )
        self.check_partition(primary_occasions, secondary_occasions,
                             occasion_count)

        self.history = history.astype(np.int64)
        self.survey_count = survey_count
        self.season_count = season_count
        self.weights = weights
        self.primary_occasions = primary_occasions
        self.secondary_occasions = secondary_occasions

        self._nll_fn = None
        self._nll_grad_fn = None
        self._trace_fn = None

    @staticmethod
    def check_partition(primary, secondary, occasion_count):
        '''Ensure primary and secondary occasions partition {0..N-2}.'''
        overlap = np.intersect1d(primary, secondary)
        if overlap.size:
            raise ValueError(f'occasions {overlap.tolist()} are both primary '
                             'and secondary')
        covered = np.union1d(primary, secondary)
        if not np.array_equal(covered, np.arange(occasion_count - 1)):
            raise ValueError('primary and secondary occasions must partition '
                             f'0..{occasion_count - 2}')

    @property
    def site_count(self) -> int:
        return self.history.shape[0]

    @property
    def occasion_count(self) -> int:
        return self.history.shape[1]

    def build_graph(self, theta) -> dict:
        """Forward recursion as a pytensor graph.

        Args:
            theta: symbolic vector of logit scale psi, p, gamma, epsilon
        Returns:
            dict with the negative log likelihood ('nll'), the per-site log
              likelihood ('site_loglik'), the forward vectors for every
              occasion ('alpha', shape (sites, N, 2)) and the transition
              matrices ('transition', shape (N - 1, 2, 2)).
        """
        psi, p, gamma, epsilon = [logistic(theta[i]) for i in range(4)]

        initial = pt.stack([1 - psi, psi])
        emission = emission_matrix(p)
        transitions = transition_matrices(gamma, epsilon,
                                          self.primary_occasions,
                                          self.occasion_count)

        # emission.T[y] picks the column B[:, y] for every site at once
        alpha = initial * emission.T[self.history[:, 0]]
        alphas = [alpha]
        for t in range(1, self.occasion_count):
            alpha = pt.dot(alpha, transitions[t - 1]) * \
                emission.T[self.history[:, t]]
            alphas.append(alpha)

        # no underflow guard: log(0) is -inf and the optimizer sees it
        site_loglik = pt.log(alpha.sum(axis=1))
        nll = -pt.sum(site_loglik * self.weights)

        if transitions:
            transition = pt.stack(transitions)
        else:
            transition = pt.zeros((0, 2, 2))

        return {
            'nll': nll,
            'site_loglik': site_loglik,
            'alpha': pt.stack(alphas, axis=1),
            'transition': transition
        }

    def negative_loglik(self, theta) -> float:
        '''Negative log likelihood at the logit scale parameters.'''
        if self._nll_fn is None:
            theta_var = pt.dvector('theta')
            graph = self.build_graph(theta_var)
            self._nll_fn = pytensor.function([theta_var], graph['nll'])
        return float(self._nll_fn(self._check_theta(theta)))

    def negative_loglik_and_grad(self, theta):
        '''Negative log likelihood and its exact gradient, for jac=True.'''
        if self._nll_grad_fn is None:
            theta_var = pt.dvector('theta')
            nll = self.build_graph(theta_var)['nll']
            grad = pytensor.grad(nll, theta_var)
            self._nll_grad_fn = pytensor.function([theta_var], [nll, grad])
        nll, grad = self._nll_grad_fn(self._check_theta(theta))
        return float(nll), np.asarray(grad)

    def trace(self, theta) -> dict:
        '''Evaluate the likelihood and keep the intermediate quantities.'''
        if self._trace_fn is None:
            theta_var = pt.dvector('theta')
            graph = self.build_graph(theta_var)
            keys = ['nll', 'site_loglik', 'alpha', 'transition']
            outputs = [graph[k] for k in keys]
            fn = pytensor.function([theta_var], outputs)
            self._trace_fn = (keys, fn)

        keys, fn = self._trace_fn
        values = fn(self._check_theta(theta))
        result = dict(zip(keys, values))
        result['nll'] = float(result['nll'])
        return result

    def __call__(self, theta) -> float:
        return self.negative_loglik(theta)

    def _check_theta(self, theta) -> np.ndarray:
        theta = np.asarray(theta, dtype=float)
        if theta.shape != (len(PARAMETER_NAMES),):
            raise ValueError(f'theta must have length {len(PARAMETER_NAMES)} '
                             f'({", ".join(PARAMETER_NAMES)})')
        return theta
