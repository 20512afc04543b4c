import dataclasses
import json
import logging
import time
from pathlib import Path

import numpy as np
import slab

from data_handler import TrialRecord, get_columns, records_to_frame, select_stimulus
from params import QuestConfig, StimulusParameters, experiment_params
from quest import QuestStaircase
from sound_handler import synthesize_stimulus, to_sound
from staircase import UpDownStaircase
from trial_mapper import SnrLevelMapper
from utils import ASCENDING, DESCENDING, get_response, score_response

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("[%(levelname)s] %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


def console_responder(stimulus, trial_index, max_count=None):
    """Play the stimulus and ask for the figure direction on the console."""
    sound = to_sound(stimulus)
    sound.play()
    start = time.perf_counter()
    response = get_response(trial_index, max_count)
    return response, time.perf_counter() - start


class _Run:
    def __init__(self, subject, expopt=None, group="elderly", seed=None, respond=None):
        self.subject = subject
        self.expopt = expopt if expopt is not None else experiment_params(group)
        self.stim_params = StimulusParameters()
        self.loudness_eq = True
        self.iti_range = (0.7, 1.2)  # in s
        self.realtime = True
        self.rng = np.random.default_rng(seed)
        self.respond = respond if respond is not None else console_responder
        self.columns = get_columns()
        self.records = []

    def _present(self, stimulus, trial_index, run_start):
        iti = self.rng.uniform(*self.iti_range)
        trial_start = time.perf_counter() - run_start
        if self.realtime:
            time.sleep(iti)
        detected_direction, response_time = self.respond(stimulus, trial_index)
        return iti, trial_start, detected_direction, response_time

    def _record(self, results_table, block, trial, stimulus_id, stimulus, outcome, detected_direction,
                response_time, iti, trial_start):
        params = stimulus.params
        figure_onset_time = (stimulus.figure_start - 1) * params.chord_duration if stimulus.has_figure else np.nan
        record = TrialRecord(
            subject=self.subject,
            block=block,
            trial=trial,
            stimulus_id=stimulus_id,
            tone_comp=params.tone_comp,
            figure_coh=params.figure_coh,
            figure_step=params.figure_step,
            figure_start_chord=stimulus.figure_start,
            figure_end_chord=stimulus.figure_end,
            accuracy=outcome.accuracy,
            detected_direction=np.nan if detected_direction is None else detected_direction,
            response_time=np.nan if detected_direction is None else response_time,
            iti=iti,
            trial_start=trial_start,
            playback_delay=iti,
            figure_onset_time=figure_onset_time,
            response_delay=params.total_duration,
        )
        self.records.append(record)
        if results_table is not None:
            row = results_table.Row(**dataclasses.asdict(record))
            results_table.write(row)
        return record

    def log_frame(self):
        return records_to_frame(self.records)


class BackgroundThreshold(_Run):
    """
    Quest thresholding of the background tone count at fixed figure
    coherence. Every trial has an ascending or descending figure (random),
    the listener reports the direction.
    """

    def __init__(self, subject, expopt=None, group="elderly", seed=None, respond=None):
        super().__init__(subject, expopt=expopt, group=group, seed=seed, respond=respond)
        self.quest_config = QuestConfig()
        self.mapper = None
        self.staircase = None
        self.background_estimate = None
        self.tone_comp_easy = None
        self.tone_comp_difficult = None
        self.results_folder = "Results"

    def quest_state_path(self):
        return Path(self.results_folder) / self.subject / f"{self.subject}_quest_state.json"

    def run_sequence(self, save=True, block=1, state_path=None, resume_from=None):
        """
        Run Quest until it converges or runs out of trials. The Quest state is
        written to `state_path` after every trial (by default next to the
        results when saving), and `resume_from` continues a saved run.
        """
        cfg = self.quest_config
        figure_coh = self.expopt.figure_coh
        self.mapper = SnrLevelMapper(figure_coh, figure_coh + self.expopt.tone_comp_high,
                                     cfg.levels_below, cfg.levels_above)
        if resume_from is not None:
            self.staircase = QuestStaircase.load_json(resume_from)
            logger.info(f"Resuming Quest from {resume_from} after {self.staircase.trial_count} trials")
        else:
            self.staircase = QuestStaircase.from_config(cfg, self.mapper.sd_target)
        if state_path is None and save:
            state_path = self.quest_state_path()
        results_table = slab.ResultsTable(columns=self.columns, subject=self.subject) if save else None
        run_start = time.perf_counter()
        trial = self.staircase.trial_count
        while not self.staircase.is_done:
            trial += 1
            intensity = self.staircase.recommend()
            direction = int(self.rng.choice([ASCENDING, DESCENDING]))
            trial_params, realized = self.mapper.apply(self.stim_params, intensity, direction, cfg.step_size)
            logger.info(
                f"Starting trial {trial}: {trial_params.background_count} background tones "
                f"(log-SNR {realized:.3f}), {'ascending' if direction > 0 else 'descending'} figure"
            )
            stimulus = synthesize_stimulus(trial_params, self.loudness_eq, rng=self.rng)
            iti, trial_start, detected_direction, response_time = self._present(stimulus, trial - 1, run_start)
            outcome = score_response(detected_direction, trial_params.figure_step)
            logger.info(f"Response: {detected_direction}, {outcome.value}")
            self.staircase.update(realized, outcome)
            if state_path is not None:
                self.staircase.save_json(state_path)
            self._record(results_table, block, trial, None, stimulus, outcome, detected_direction,
                         response_time, iti, trial_start)

        self.background_estimate, _ = self.mapper.to_stimulus_parameter(self.staircase.posterior_mean)
        self.tone_comp_easy = self.background_estimate
        self.tone_comp_difficult = self.background_estimate + self.expopt.high_low_bg_comp_diff
        logger.info(
            f"Background estimate: {self.background_estimate} tones "
            f"(posterior mean {self.staircase.posterior_mean:.3f}, SD {self.staircase.posterior_sd:.3f}, "
            f"{self.staircase.status.value} after {self.staircase.trial_count} trials)"
        )
        if state_path is not None:
            self.save_estimate(Path(state_path).with_name(f"{Path(state_path).stem}_estimate.json"))
        return self.background_estimate

    def save_estimate(self, path):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump({
                "background_estimate": int(self.background_estimate),
                "tone_comp_easy": int(self.tone_comp_easy),
                "tone_comp_difficult": int(self.tone_comp_difficult),
                "posterior_mean": self.staircase.posterior_mean,
                "posterior_sd": self.staircase.posterior_sd,
                "status": self.staircase.status.value,
                "trial_count": self.staircase.trial_count,
            }, f)
        return path


class SupervisedLearning(_Run):
    """
    Step-size staircase blocks for figure direction learning. Odd blocks use
    the easy background count, even blocks the difficult one. Stimuli are
    picked from `stimulus_table` when given, otherwise synthesized per trial.
    """

    def __init__(self, subject, background_estimate, expopt=None, group="elderly", seed=None, respond=None,
                 stimulus_table=None):
        super().__init__(subject, expopt=expopt, group=group, seed=seed, respond=respond)
        self.background_estimate = background_estimate
        self.stimulus_table = stimulus_table
        self.n_blocks = 4
        self.max_block_trials = 500
        self.staircases = {}

    def background_count(self, block):
        if block % 2 == 1:
            return self.background_estimate
        return self.background_estimate + self.expopt.high_low_bg_comp_diff

    def run_block(self, block, save=True, results_table=None):
        if save and results_table is None:
            results_table = slab.ResultsTable(columns=self.columns, subject=self.subject)
        staircase = UpDownStaircase(self.expopt.staircase)
        self.staircases[block] = staircase
        background_count = self.background_count(block)
        figure_coh = self.expopt.figure_coh
        run_start = time.perf_counter()
        while not staircase.is_done:
            if staircase.trial_count >= self.max_block_trials:
                logger.warning(f"Block {block} stopped at {self.max_block_trials} trials "
                               f"with {staircase.reversal_count} reversals")
                break
            direction = int(self.rng.choice([ASCENDING, DESCENDING]))
            figure_step = staircase.recommend_step_size(direction)
            if self.stimulus_table is not None:
                row = select_stimulus(self.stimulus_table, figure_step, background_count, self.rng)
                stimulus_id = int(row["stimulus_id"])
                trial_params = row["params"]
                rng = None if trial_params.random_seed is not None else self.rng
            else:
                stimulus_id = None
                trial_params = dataclasses.replace(self.stim_params, figure_coh=figure_coh,
                                                   tone_comp=figure_coh + background_count,
                                                   figure_step=figure_step)
                rng = self.rng
            logger.info(f"Block {block}, trial {staircase.trial_count + 1}: step size {figure_step}")
            stimulus = synthesize_stimulus(trial_params, self.loudness_eq, rng=rng)
            iti, trial_start, detected_direction, response_time = self._present(
                stimulus, staircase.trial_count, run_start)
            outcome = score_response(detected_direction, figure_step)
            staircase.update(outcome)
            self._record(results_table, block, staircase.trial_count, stimulus_id, stimulus, outcome,
                         detected_direction, response_time, iti, trial_start)
        logger.info(f"Block {block} done: {staircase.trial_count} trials, {staircase.reversal_count} reversals, "
                    f"final step size {staircase.step_size}")
        return staircase

    def run_sequence(self, save=True, blocks=None):
        results_table = slab.ResultsTable(columns=self.columns, subject=self.subject) if save else None
        if blocks is None:
            blocks = range(1, self.n_blocks + 1)
        for block in blocks:
            self.run_block(block, save=save, results_table=results_table)
        print("Done with sequence!")
        return self.log_frame()
