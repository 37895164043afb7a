"""
EEG ERP Unfolding Package

Overlap-corrected ERP extraction for continuous EEG recordings. Stimulus
events are labeled into two factors, a time-expanded regression model is
fitted to the continuous signal with artifact samples masked out, and the
deconvolved response of the selected stimulus is saved per subject.

Modules:
--------
config: Immutable batch configuration
loading: Recording discovery and loading (files or BIDS)
preprocessing: Channel removal, montage, resampling, filtering
events: Stimulus factor labeling
design: Formula-based design matrix
timeexpand: Stick-function time expansion
artifacts: Continuous artifact detection and exclusion
glm: Least-squares fitting
condense: Reshaping, condition extraction, baseline correction
pipeline: Per-subject state machine and batch processing
grouping: Group/condition collections and grand averages
utils: Output files, processing log, error log
"""

from .errors import ConfigurationError, FitError
from .config import BatchConfig, create_default_config, parse_labels
from .loading import load_recording, list_recordings, get_eeg_data, load_bids_recording
from .events import code_events, events_from_raw, label_events
from .preprocessing import preprocess_pipeline
from .design import DesignMatrix, build_design_matrix, parse_formula
from .timeexpand import ExpandedDesign, time_expand
from .artifacts import detect_continuous_artifacts, exclude_artifacts, merge_intervals
from .glm import GLMFit, fit_glm
from .condense import CondensedResult, condense, extract_condition, apply_baseline_correction
from .pipeline import SubjectOutcome, SubjectState, BatchReport, run_single_subject, run_batch_processing
from .grouping import build_erp_collection, grand_average

__version__ = "1.0.0"

__all__ = [
    # Errors
    'ConfigurationError',
    'FitError',

    # Configuration
    'BatchConfig',
    'create_default_config',
    'parse_labels',

    # Loading
    'load_recording',
    'list_recordings',
    'get_eeg_data',
    'load_bids_recording',
    'preprocess_pipeline',

    # Events and design
    'code_events',
    'events_from_raw',
    'label_events',
    'DesignMatrix',
    'build_design_matrix',
    'parse_formula',

    # Deconvolution
    'ExpandedDesign',
    'time_expand',
    'detect_continuous_artifacts',
    'exclude_artifacts',
    'merge_intervals',
    'GLMFit',
    'fit_glm',
    'CondensedResult',
    'condense',
    'extract_condition',
    'apply_baseline_correction',

    # Pipeline
    'SubjectOutcome',
    'SubjectState',
    'BatchReport',
    'run_single_subject',
    'run_batch_processing',

    # Results
    'build_erp_collection',
    'grand_average',
]
