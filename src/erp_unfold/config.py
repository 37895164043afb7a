"""
Batch Configuration Module

Builds the immutable configuration shared by every subject of a batch.
Settings come from a nested dictionary (the JSON config file layout) and are
validated once, before any recording is touched.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from .errors import ConfigurationError

STIM1_TYPE = 'S 10'
STIM2_TYPE = 'S 20'
DEFAULT_FORMULA = 'y ~ 1 + stim1 + stim2'


def parse_labels(labels: Union[str, Iterable[str], None]) -> Tuple[str, ...]:
    """
    Split a comma-separated label string into normalized labels

    Spaces are removed inside labels too, so 'S  1' and 'S1' are the same
    marker. Empty entries are dropped.
    """
    if labels is None:
        return ()
    if isinstance(labels, str):
        labels = labels.split(',')
    parsed = [''.join(str(label).split()) for label in labels]
    return tuple(label for label in parsed if label)


def create_default_config() -> Dict[str, Any]:
    """
    Create default configuration for a batch

    Returns:
    --------
    config : dict
        Default configuration parameters
    """
    config = {
        'labels': {
            'stim1': [],
            'stim2': [],
            'save_label': ''
        },
        'preprocessing': {
            'drop_channels': [],
            'montage': None,
            'resample_freq': None,
            'l_freq': 0.1,
            'h_freq': 30.0
        },
        'unfold': {
            'tmin': -0.2,
            'tmax': 0.8,
            'event_types': [STIM1_TYPE, STIM2_TYPE],
            'formula': [DEFAULT_FORMULA],
            'method': 'stick',
            'solver': 'lsmr',
            'damp': 0.0,
            'maxiter': None
        },
        'artifacts': {
            'amplitude_threshold': 250.0,
            'window': 2.0,
            'step': 1.0,
            'method': 'absolute'
        },
        'extraction': {
            'condition': 2,
            'cutoff': -0.2,
            'baseline': [-0.2, 0.0]
        }
    }

    return config


@dataclass(frozen=True)
class BatchConfig:
    """
    Settings for one batch run, read-only across subjects.

    Attributes:
        stim1_labels: Markers belonging to stimulus 1, in factor-index order
        stim2_labels: Markers belonging to stimulus 2, in factor-index order
        save_label: Optional suffix for saved files and the error log
        tmin: Start of the peri-event window (seconds)
        tmax: End of the peri-event window (seconds)
        event_types: Rewritten event types entering the model
        formulas: Model formulas, one per event-type group
        method: Temporal basis for time expansion ('stick' only)
        solver: 'lsmr' (sparse, iterative) or 'lstsq' (dense, strict)
        damp: Ridge damping passed to lsmr
        maxiter: lsmr iteration limit (None lets scipy decide)
        amplitude_threshold: Artifact threshold in microvolts, or 'auto'
        artifact_window: Artifact scan window length (seconds)
        artifact_step: Artifact scan step (seconds)
        artifact_method: 'absolute' or 'peak_to_peak'
        condition: Stimulus to extract (1 or 2)
        cutoff: First time point kept in the saved ERP (seconds)
        baseline: Baseline interval (seconds)
        drop_channels: Channels removed before processing
        montage: Standard montage name or path to a channel location file
        resample_freq: New sampling rate, or None to keep the original
        l_freq: High-pass cutoff (Hz), None to skip
        h_freq: Low-pass cutoff (Hz), None to skip
    """

    stim1_labels: Tuple[str, ...] = ()
    stim2_labels: Tuple[str, ...] = ()
    save_label: str = ''
    tmin: float = -0.2
    tmax: float = 0.8
    event_types: Tuple[str, ...] = (STIM1_TYPE, STIM2_TYPE)
    formulas: Tuple[str, ...] = (DEFAULT_FORMULA,)
    method: str = 'stick'
    solver: str = 'lsmr'
    damp: float = 0.0
    maxiter: Optional[int] = None
    amplitude_threshold: Union[float, str] = 250.0
    artifact_window: float = 2.0
    artifact_step: float = 1.0
    artifact_method: str = 'absolute'
    condition: int = 2
    cutoff: float = -0.2
    baseline: Tuple[float, float] = (-0.2, 0.0)
    drop_channels: Tuple[str, ...] = ()
    montage: Optional[str] = None
    resample_freq: Optional[float] = None
    l_freq: Optional[float] = 0.1
    h_freq: Optional[float] = 30.0

    def __post_init__(self) -> None:
        """Validate batch settings."""
        if self.tmin >= self.tmax:
            raise ConfigurationError(
                f"Epoch start ({self.tmin}) must be < end ({self.tmax})"
            )
        if self.baseline[0] >= self.baseline[1]:
            raise ConfigurationError(
                f"Baseline start ({self.baseline[0]}) must be < end ({self.baseline[1]})"
            )
        if not self.tmin <= self.cutoff <= self.baseline[0]:
            raise ConfigurationError(
                f"Cutoff ({self.cutoff}) must lie between the epoch start "
                f"({self.tmin}) and the baseline start ({self.baseline[0]})"
            )
        if self.baseline[1] > self.tmax:
            raise ConfigurationError(
                f"Baseline end ({self.baseline[1]}) is outside the epoch window"
            )
        if isinstance(self.amplitude_threshold, str):
            if self.amplitude_threshold != 'auto':
                raise ConfigurationError(
                    f"Amplitude threshold must be numeric or 'auto', got "
                    f"{self.amplitude_threshold!r}"
                )
        elif self.amplitude_threshold <= 0:
            raise ConfigurationError(
                f"Amplitude threshold must be positive, got {self.amplitude_threshold}"
            )
        if self.artifact_window <= 0 or self.artifact_step <= 0:
            raise ConfigurationError("Artifact window and step must be positive")
        if self.artifact_method not in ('absolute', 'peak_to_peak'):
            raise ConfigurationError(f"Unknown artifact method: {self.artifact_method}")
        if self.condition not in (1, 2):
            raise ConfigurationError(f"Condition must be 1 or 2, got {self.condition}")
        if self.solver not in ('lsmr', 'lstsq'):
            raise ConfigurationError(f"Unknown solver: {self.solver}")
        if self.damp < 0:
            raise ConfigurationError(f"Damping must be non-negative, got {self.damp}")
        if not self.formulas:
            raise ConfigurationError("At least one formula is required")
        shared = set(self.stim1_labels) & set(self.stim2_labels)
        if shared:
            raise ConfigurationError(
                f"Labels assigned to both stimuli: {sorted(shared)}"
            )
        if (self.l_freq is not None and self.h_freq is not None
                and self.l_freq >= self.h_freq):
            raise ConfigurationError(
                f"Filter low cutoff ({self.l_freq}) must be < high cutoff ({self.h_freq})"
            )
        if self.resample_freq is not None and self.resample_freq <= 0:
            raise ConfigurationError(
                f"Resampling frequency must be positive, got {self.resample_freq}"
            )

    @property
    def condition_label(self) -> str:
        """Label written to the error log for this batch."""
        return self.save_label

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'BatchConfig':
        """
        Build a BatchConfig from the nested JSON layout

        Sections or keys missing from ``config`` fall back to
        ``create_default_config``.
        """
        merged = create_default_config()
        for section, values in config.items():
            if section not in merged:
                raise ConfigurationError(f"Unknown configuration section: {section}")
            merged[section].update(values)

        labels = merged['labels']
        prep = merged['preprocessing']
        unfold = merged['unfold']
        artifacts = merged['artifacts']
        extraction = merged['extraction']

        formulas = unfold['formula']
        if isinstance(formulas, str):
            formulas = [formulas]

        threshold = artifacts['amplitude_threshold']
        if threshold != 'auto':
            try:
                threshold = float(threshold)
            except (TypeError, ValueError):
                raise ConfigurationError(
                    f"Amplitude threshold must be numeric or 'auto', got {threshold!r}"
                )

        return cls(
            stim1_labels=parse_labels(labels['stim1']),
            stim2_labels=parse_labels(labels['stim2']),
            save_label=labels['save_label'] or '',
            tmin=float(unfold['tmin']),
            tmax=float(unfold['tmax']),
            event_types=_event_types(unfold['event_types']),
            formulas=tuple(formulas),
            method=unfold['method'],
            solver=unfold['solver'],
            damp=float(unfold['damp']),
            maxiter=unfold['maxiter'],
            amplitude_threshold=threshold,
            artifact_window=float(artifacts['window']),
            artifact_step=float(artifacts['step']),
            artifact_method=artifacts['method'],
            condition=int(extraction['condition']),
            cutoff=float(extraction['cutoff']),
            baseline=tuple(float(t) for t in extraction['baseline']),
            drop_channels=tuple(prep['drop_channels'] or ()),
            montage=prep['montage'],
            resample_freq=prep['resample_freq'],
            l_freq=prep['l_freq'],
            h_freq=prep['h_freq'],
        )


def _event_types(event_types):
    # Nested lists pair event-type groups with formulas
    return tuple(
        tuple(group) if isinstance(group, (list, tuple)) else group
        for group in event_types
    )
