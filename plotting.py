import logging

import matplotlib.pyplot as plt
import seaborn as sns

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("[%(levelname)s] %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)

sns.set_style("white")

PLOT_MODES = ("all", "snr-contrast")


def plot_staircase(df, mode="all", subject=None, ax=None):
    """
    Step size per trial of a learning log.

    mode "all": one line per block on a single axis (earlier blocks drawn
    thicker so that overlapping lines stay visible). Returns the axis.
    mode "snr-contrast": one figure per block with the high SNR (fewest
    tone components) and low SNR (most tone components) trials as separate
    lines. Returns a dict block -> axis.
    """
    if mode not in PLOT_MODES:
        raise ValueError(f"mode must be one of {PLOT_MODES}, got {mode!r}")
    df = df.copy()
    df["step_size"] = df["figure_step"].abs()
    blocks = sorted(df["block"].unique())
    subject_str = f" for subject {subject}" if subject is not None else ""

    if mode == "all":
        if ax is None:
            fig, ax = plt.subplots(figsize=(10, 6))
        for line_width, block in zip(range(len(blocks), 0, -1), blocks):
            df_block = df[df["block"] == block].reset_index(drop=True)
            ax.plot(df_block.index + 1, df_block["step_size"], lw=line_width, label=f"Block {block}")
        ax.set_title(f"SFG learning staircase{subject_str}")
        ax.set_xlabel("Trial")
        ax.set_ylabel("Step size")
        ax.legend()
        return ax

    high_snr_tone_comp = df["tone_comp"].min()
    low_snr_tone_comp = df["tone_comp"].max()
    axes = {}
    for block in blocks:
        df_block = df[df["block"] == block].copy()
        df_block["block_trial"] = range(1, len(df_block) + 1)
        df_block["snr"] = df_block["tone_comp"].map(
            lambda tone_comp: "High SNR" if tone_comp == high_snr_tone_comp else
            "Low SNR" if tone_comp == low_snr_tone_comp else "Other")
        fig, block_ax = plt.subplots(figsize=(10, 6))
        sns.lineplot(data=df_block, x="block_trial", y="step_size", hue="snr",
                     hue_order=[s for s in ["High SNR", "Low SNR"] if s in set(df_block["snr"])], ax=block_ax)
        block_ax.set_title(f"SFG learning staircase{subject_str}, block {block}")
        block_ax.set_xlabel("Trial")
        block_ax.set_ylabel("Step size")
        for snr in ["High SNR", "Low SNR"]:
            accuracy = df_block[df_block["snr"] == snr]["accuracy"].mean()
            logger.info(f"Mean accuracy ({snr.lower()}, block {block}): {accuracy:.3f}")
        axes[block] = block_ax
    return axes
