import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np
import pandas as pd

from errors import ParameterConsistencyError
from utils import ASCENDING, DESCENDING

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("[%(levelname)s] %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


@dataclass
class TrialRecord:
    """One row of the trial log. Times are in seconds."""
    subject: str
    block: int
    trial: int
    stimulus_id: Optional[int]
    tone_comp: int
    figure_coh: int
    figure_step: int
    figure_start_chord: int
    figure_end_chord: int
    accuracy: float
    detected_direction: float
    response_time: float
    iti: float
    trial_start: float
    playback_delay: float
    figure_onset_time: float
    response_delay: float


def get_columns():
    column_names = [
        "subject",
        "block",
        "trial",
        "stimulus_id",
        "tone_comp",
        "figure_coh",
        "figure_step",
        "figure_start_chord",
        "figure_end_chord",
        "accuracy",
        "detected_direction",
        "response_time",
        "iti",
        "trial_start",
        "playback_delay",
        "figure_onset_time",
        "response_delay"
    ]
    return column_names


def records_to_frame(records):
    return pd.DataFrame([dataclasses.asdict(record) for record in records], columns=get_columns())


def generate_stimulus_table(base_params, step_sizes, background_counts, trials_per_type=1):
    """
    One row per stimulus: every non-zero step size in both directions, for
    every background count, `trials_per_type` times. Each row carries the
    StimulusParameters snapshot to synthesize it from. With a base seed,
    stimulus i gets seed base_seed + i.
    """
    rows = []
    stimulus_id = 0
    for background_count in background_counts:
        for step_size in step_sizes:
            if step_size == 0:
                continue
            for direction in [ASCENDING, DESCENDING]:
                for repetition in range(trials_per_type):
                    seed = None if base_params.random_seed is None else base_params.random_seed + stimulus_id
                    params = dataclasses.replace(
                        base_params,
                        tone_comp=base_params.figure_coh + background_count,
                        figure_step=direction * abs(step_size),
                        random_seed=seed,
                    )
                    rows.append({
                        "stimulus_id": stimulus_id,
                        "step_size": abs(step_size),
                        "figure_step": params.figure_step,
                        "background_count": background_count,
                        "tone_comp": params.tone_comp,
                        "figure_coh": params.figure_coh,
                        "repetition": repetition,
                        "params": params,
                    })
                    stimulus_id += 1
    df_stimuli = pd.DataFrame(rows)
    logger.info(f"Generated a stimulus table with {len(df_stimuli)} stimuli")
    return df_stimuli


def select_stimulus(df_stimuli, figure_step, background_count, rng=None):
    """Random row of the stimulus table with the given signed step and background count."""
    if rng is None:
        rng = np.random.default_rng()
    candidates = df_stimuli[(df_stimuli["figure_step"] == figure_step) &
                            (df_stimuli["background_count"] == background_count)]
    if candidates.empty:
        raise ParameterConsistencyError(
            f"No stimulus with figure step {figure_step} and {background_count} background tones in the table"
        )
    return candidates.iloc[int(rng.integers(len(candidates)))]


class BlockEndStrategy(Enum):
    LAST = "last"
    MINIMUM = "minimum"


def block_end_step_sizes(log_df, strategy=BlockEndStrategy.LAST, block_trial_count=100):
    """
    Start and end step size of every block in a trial log.

    status is "incomplete" for blocks shorter than `block_trial_count` and
    "dropped" when the end step size is not below the start step size.
    """
    strategy = BlockEndStrategy(strategy)
    group_cols = ["subject", "session"] if "session" in log_df.columns else ["subject"]
    rows = []
    for keys, df_block in log_df.groupby(group_cols + ["block"], sort=True):
        keys = keys if isinstance(keys, tuple) else (keys,)
        row = dict(zip(group_cols + ["block"], keys))
        block_str = "_".join(str(k) for k in keys)
        step_sizes = df_block["figure_step"].abs().to_numpy()
        row["n_trials"] = len(df_block)
        row["start_step_size"] = step_sizes[0]
        if strategy is BlockEndStrategy.LAST:
            row["end_step_size"] = step_sizes[-1]
        else:
            row["end_step_size"] = step_sizes.min()
        if len(df_block) < block_trial_count:
            logger.info(f"Block {block_str} incomplete, skipping")
            row["status"] = "incomplete"
        elif row["start_step_size"] <= row["end_step_size"]:
            logger.warning(f"Subject did not understand the task in {block_str}. Dropping block.")
            row["status"] = "dropped"
        else:
            row["status"] = "ok"
        rows.append(row)
    return pd.DataFrame(rows, columns=group_cols + ["block", "n_trials", "start_step_size",
                                                    "end_step_size", "status"])


def export_results(log_df, strategy=BlockEndStrategy.LAST, block_trial_count=100, blocks=None, path=None):
    """
    One row per subject (and session): end step size of each block, NaN for
    skipped or dropped blocks, and the mean over the remaining blocks.
    """
    df_blocks = block_end_step_sizes(log_df, strategy, block_trial_count)
    group_cols = [c for c in ["subject", "session"] if c in df_blocks.columns]
    if blocks is None:
        blocks = sorted(df_blocks["block"].unique())
    df_valid = df_blocks[df_blocks["status"] == "ok"]
    df_results = df_blocks[group_cols].drop_duplicates().reset_index(drop=True)
    for block in blocks:
        df_block = df_valid[df_valid["block"] == block][group_cols + ["end_step_size"]]
        df_block = df_block.rename(columns={"end_step_size": f"stepsize_block{block}"})
        df_results = df_results.merge(df_block, on=group_cols, how="left")
    block_cols = [f"stepsize_block{block}" for block in blocks]
    df_results[block_cols] = df_results[block_cols].astype(float)
    df_results["stepsize_mean"] = df_results[block_cols].mean(axis=1)
    if path is not None:
        df_results.to_csv(path, index=False)
        logger.info(f"Results saved to {path}")
    return df_results
