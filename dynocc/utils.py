import numpy as np

def read_inp(path):
    """Read in a .inp file, standard Mark file, of detection histories.

    Each line holds a history string, e.g., 010110, followed by the number of
    sites sharing it and a semicolon. Comments are wrapped in /* */.

    Returns:
        tuple (history, history_counts) of np.ndarrays
    """
    inp_comment_char = '/*'

    histories = []
    history_counts = []
    with open(path) as f:
        for line in f:
            line = line.partition(inp_comment_char)[0]
            line = line.replace(';', ' ').strip()
            if not line:
                continue

            split_line = line.split()
            detection_history = split_line[0]
            if not set(detection_history) <= {'0', '1'}:
                raise ValueError(f'{path}: history {detection_history} may '
                                 'only contain 0 and 1')
            histories.append(detection_history)

            # histories without a count stand for a single site
            if len(split_line) > 1:
                history_counts.append(int(split_line[-1]))
            else:
                history_counts.append(1)

    lengths = {len(hist) for hist in histories}
    if len(lengths) > 1:
        raise ValueError(f'{path}: histories have differing lengths {lengths}')

    if not histories:
        return np.empty((0, 0), dtype=int), np.empty(0, dtype=int)

    # explode the character string 0011 into a list
    exploded = [[*hist] for hist in histories]
    detection_array = np.array(exploded).astype(int)

    history_counts = np.array(history_counts)

    # mark uses negative counts for removals, which are ignored here
    history_counts = np.abs(history_counts)

    return detection_array, history_counts

def condense_history(history):
    """Pool sites with identical detection histories.

    Returns:
        tuple (unique_history, counts), where counts can be used as the
          per-site weights in the likelihood
    """
    unique_history, counts = np.unique(np.asarray(history), axis=0,
                                       return_counts=True)
    return unique_history, counts

def expand_history(history, history_counts):
    '''Repeat each history by its count, i.e., one row per site.'''
    return np.repeat(history, history_counts, axis=0)

def season_view(history, survey_count):
    '''Reshape (sites, J * K) into (sites, K, J).'''
    history = np.asarray(history)
    site_count, occasion_count = history.shape
    if occasion_count % survey_count:
        raise ValueError(f'{occasion_count} occasions do not divide into '
                         f'seasons of {survey_count} surveys')
    season_count = occasion_count // survey_count
    return history.reshape(site_count, season_count, survey_count)

def naive_occupancy(history, survey_count, history_counts=None):
    """Proportion of sites with at least one detection in each season.

    This ignores imperfect detection and so underestimates occupancy.
    """
    detected = season_view(history, survey_count).any(axis=2)
    if history_counts is None:
        return detected.mean(axis=0)
    history_counts = np.asarray(history_counts)
    return (detected * history_counts[:, None]).sum(axis=0) / history_counts.sum()
