"""
Main EEG Unfolding Pipeline

Runs the overlap-correction workflow for each recording of a batch: event
labeling, design matrix, time expansion, artifact exclusion, GLM fit,
condensing, validation and saving. Each subject walks through an explicit
sequence of states and ends either SAVED or FAILED; a failing subject never
stops the batch.
"""

import os
import sys
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence
from functools import partial

import mne

from .artifacts import detect_continuous_artifacts, estimate_amplitude_threshold, exclude_artifacts
from .condense import apply_baseline_correction, condense, extract_condition, has_invalid_values
from .config import BatchConfig, create_default_config, parse_labels
from .design import build_design_matrix
from .errors import ConfigurationError
from .events import code_events, count_stimulus_events
from .glm import fit_glm
from .loading import (get_eeg_data, get_subject_list, list_recordings, load_bids_recording,
                      load_recording, recording_basename, validate_bids_structure)
from .preprocessing import preprocess_pipeline
from .timeexpand import time_expand
from .utils import (append_error_entry, close_error_log, create_config_file, create_erp,
                    load_config_file, log_processing_stage, save_erp)


class SubjectState(Enum):
    LOADED = 'loaded'
    LABELED = 'labeled'
    DESIGN_BUILT = 'design_built'
    TIME_EXPANDED = 'time_expanded'
    ARTIFACT_MASKED = 'artifact_masked'
    FITTED = 'fitted'
    CONDENSED = 'condensed'
    VALIDATED = 'validated'
    SAVED = 'saved'
    FAILED = 'failed'


@dataclass
class SubjectOutcome:
    """
    Result of one subject's run.

    Attributes:
        name: Base name of the recording
        state: Final state, SAVED or FAILED
        last_state: Last state reached before finishing
        step: Step that failed, None on success
        error: Failure message, None on success
        output_path: Saved ERP file, None on failure
        rank_deficient: The design matrix had collinear columns
    """

    name: str
    state: SubjectState
    last_state: Optional[SubjectState] = None
    step: Optional[str] = None
    error: Optional[str] = None
    output_path: Optional[str] = None
    rank_deficient: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state is SubjectState.SAVED

    @property
    def is_validation_failure(self) -> bool:
        return self.state is SubjectState.FAILED and self.step == 'validation'


@dataclass
class BatchReport:
    """Outcomes of a batch, in processing order."""

    outcomes: List[SubjectOutcome] = field(default_factory=list)
    error_log: Optional[str] = None

    @property
    def n_successful(self) -> int:
        return sum(outcome.succeeded for outcome in self.outcomes)

    @property
    def n_failed(self) -> int:
        return len(self.outcomes) - self.n_successful

    @property
    def failed(self) -> List[str]:
        return [outcome.name for outcome in self.outcomes if not outcome.succeeded]


def run_single_subject(source: str, config: BatchConfig, output_dir: str,
                       loader: Callable[[str], mne.io.BaseRaw] = load_recording
                       ) -> SubjectOutcome:
    """
    Run the unfolding pipeline for a single subject

    Parameters:
    -----------
    source : str
        Recording path (or subject ID when ``loader`` reads from BIDS)
    config : BatchConfig
        Batch settings
    output_dir : str
        Path to output directory
    loader : callable
        Returns a preloaded recording for ``source``

    Returns:
    --------
    outcome : SubjectOutcome
        SAVED with the output path, or FAILED with the failing step
    """
    name = recording_basename(source)
    state = None
    step = 'loading'
    rank_deficient = False

    print(f"\n{'='*60}")
    print(f"Processing subject: {name}")
    print(f"{'='*60}")

    try:
        print("Step 1: Loading and preprocessing...")
        raw = loader(source)
        raw = preprocess_pipeline(raw, config)
        data, ch_names = get_eeg_data(raw)
        sfreq = raw.info['sfreq']
        print(f"  Loaded: {data.shape[1]} samples, {len(ch_names)} channels, {sfreq} Hz")
        state = SubjectState.LOADED

        step = 'labeling'
        print("Step 2: Labeling events...")
        events = code_events(raw, config.stim1_labels, config.stim2_labels)
        n_stim1, n_stim2 = count_stimulus_events(events)
        print(f"  Stimulus 1: {n_stim1} events, stimulus 2: {n_stim2} events")
        state = SubjectState.LABELED

        step = 'design'
        print("Step 3: Building design matrix...")
        design = build_design_matrix(events, config.event_types, config.formulas)
        print(f"  {design.n_events} events x {design.n_terms} terms {design.terms}")
        rank_deficient = design.is_rank_deficient
        if rank_deficient:
            print("⚠️  Design matrix is rank-deficient: its columns are collinear, so the "
                  "stimulus responses are not separable and the minimum-norm solution "
                  "mixes them. Drop the intercept ('y ~ 0 + stim1 + stim2') to "
                  "estimate each stimulus on its own.")
        state = SubjectState.DESIGN_BUILT

        step = 'time_expansion'
        print("Step 4: Time-expanding design matrix...")
        expanded = time_expand(design, data.shape[1], sfreq, config.tmin, config.tmax,
                               method=config.method)
        print(f"  Time-expanded matrix: {expanded.shape[0]} x {expanded.shape[1]}")
        state = SubjectState.TIME_EXPANDED

        step = 'artifacts'
        print("Step 5: Excluding continuous artifacts...")
        threshold, method = _resolve_threshold(raw, config)
        intervals = detect_continuous_artifacts(
            data, sfreq, threshold, window=config.artifact_window,
            step=config.artifact_step, method=method
        )
        print(f"  {len(intervals)} artifact interval(s) above {threshold:.1f} uV")
        expanded = exclude_artifacts(expanded, intervals)
        state = SubjectState.ARTIFACT_MASKED

        step = 'fitting'
        print("Step 6: Fitting GLM...")
        fit = fit_glm(expanded, data, solver=config.solver, damp=config.damp,
                      maxiter=config.maxiter)
        state = SubjectState.FITTED

        step = 'condensing'
        print("Step 7: Condensing results...")
        result = condense(fit, expanded, ch_names)
        erp, times = extract_condition(result, config.condition, config.cutoff)
        erp = apply_baseline_correction(erp, times, sfreq, config.baseline)
        state = SubjectState.CONDENSED

    except Exception as e:
        print(f"❌ Error processing {name} during {step}: {e}")
        traceback.print_exc()
        log_processing_stage(name, "pipeline_failed", output_dir,
                             step=step, error=str(e))
        return SubjectOutcome(name=name, state=SubjectState.FAILED, last_state=state,
                              step=step, error=str(e))

    if has_invalid_values(erp):
        message = "deconvolved output contains NaN values"
        print(f"⚠️  {name} could not be unfolded: {message}")
        log_processing_stage(name, "validation_failed", output_dir,
                             rank_deficient=rank_deficient)
        return SubjectOutcome(name=name, state=SubjectState.FAILED, last_state=state,
                              step='validation', error=message,
                              rank_deficient=rank_deficient)
    state = SubjectState.VALIDATED

    try:
        evoked = create_erp(erp, times, raw.info, ch_names, design.n_events,
                            comment=f"stim{config.condition}")
        output_path = save_erp(evoked, output_dir, name, config.save_label)
    except Exception as e:
        print(f"❌ Error saving {name}: {e}")
        traceback.print_exc()
        log_processing_stage(name, "pipeline_failed", output_dir,
                             step='saving', error=str(e))
        return SubjectOutcome(name=name, state=SubjectState.FAILED, last_state=state,
                              step='saving', error=str(e))

    log_processing_stage(
        name,
        "pipeline_completed",
        output_dir,
        n_events=design.n_events,
        n_channels=len(ch_names),
        n_samples_used=fit.n_samples_used,
        artifact_intervals=len(intervals),
        rank_deficient=rank_deficient,
        output=output_path
    )

    print(f"✅ {name} processing completed successfully!")
    return SubjectOutcome(name=name, state=SubjectState.SAVED, last_state=state,
                          output_path=output_path, rank_deficient=rank_deficient)


def _resolve_threshold(raw: mne.io.BaseRaw, config: BatchConfig):
    if config.amplitude_threshold == 'auto':
        threshold = estimate_amplitude_threshold(raw, config.artifact_window,
                                                 config.artifact_step)
        return threshold, 'peak_to_peak'
    return float(config.amplitude_threshold), config.artifact_method


def run_batch_processing(sources: Sequence[str], config: BatchConfig, output_dir: str,
                         loader: Callable[[str], mne.io.BaseRaw] = load_recording
                         ) -> BatchReport:
    """
    Run the unfolding pipeline for multiple subjects

    Parameters:
    -----------
    sources : sequence of str
        Recording paths (or subject IDs for a BIDS loader)
    config : BatchConfig
        Batch settings, shared by every subject
    output_dir : str
        Path to output directory
    loader : callable
        Returns a preloaded recording for a source

    Returns:
    --------
    report : BatchReport
        Outcome of every subject and the path of the error log
    """
    os.makedirs(output_dir, exist_ok=True)
    print(f"Starting batch processing for {len(sources)} subjects")

    report = BatchReport()

    for i, source in enumerate(sources, 1):
        print(f"\nProgress: {i}/{len(sources)}")

        outcome = run_single_subject(source, config, output_dir, loader)
        report.outcomes.append(outcome)

        if not outcome.succeeded:
            append_error_entry(output_dir, outcome.name, config.condition_label)

    report.error_log = close_error_log(output_dir, report.n_failed, config.condition_label)

    print(f"\n{'='*60}")
    print(f"Successfully completed {report.n_successful}/{len(sources)} files")
    print(f"Failed: {report.n_failed}/{len(sources)}")
    print(f"{'='*60}")

    return report


def build_config(args) -> Dict[str, Any]:
    """
    Merge a config file and command-line overrides into the nested layout
    """
    config = create_default_config()
    if args.config:
        for section, values in load_config_file(args.config).items():
            config.setdefault(section, {}).update(values)

    overrides = {
        ('labels', 'stim1'): parse_labels(args.stim1) if args.stim1 is not None else None,
        ('labels', 'stim2'): parse_labels(args.stim2) if args.stim2 is not None else None,
        ('labels', 'save_label'): args.label,
        ('unfold', 'tmin'): args.tmin,
        ('unfold', 'tmax'): args.tmax,
        ('unfold', 'solver'): args.solver,
        ('preprocessing', 'l_freq'): args.l_freq,
        ('preprocessing', 'h_freq'): args.h_freq,
        ('preprocessing', 'resample_freq'): args.resample,
        ('preprocessing', 'drop_channels'): args.drop_channels,
        ('preprocessing', 'montage'): args.montage,
        ('artifacts', 'amplitude_threshold'): _threshold_arg(args.threshold),
        ('extraction', 'condition'): args.condition,
    }
    for (section, key), value in overrides.items():
        if value is not None:
            config[section][key] = list(value) if isinstance(value, tuple) else value

    return config


def _threshold_arg(value: Optional[str]):
    if value is None or value == 'auto':
        return value
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Amplitude threshold must be numeric or 'auto', got {value!r}")


def main(argv: Optional[Sequence[str]] = None) -> Optional[BatchReport]:
    """
    Main function for command-line usage
    """
    import argparse
    from . import __version__

    parser = argparse.ArgumentParser(
        description='Overlap-corrected ERP extraction (deconvolution) for EEG recordings',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Unfold every recording in a folder
  erp-unfold --input-dir /path/to/raw --output /path/to/out --stim1 "S1,S2" --stim2 "S3"

  # Specific files, extract stimulus 1, custom window and threshold
  erp-unfold --files a.vhdr b.vhdr --output out --stim1 S1 --stim2 S3 \\
             --condition 1 --tmin -0.3 --tmax 1.0 --threshold 200

  # Subjects of a BIDS dataset
  erp-unfold --bids-root /path/to/bids --task oddball --output out --config cfg.json

  # Create config file
  erp-unfold --create-config /path/to/config.json
        """
    )

    source = parser.add_argument_group('input')
    source.add_argument('--input-dir', help='Folder with recordings to process')
    source.add_argument('--files', nargs='+', help='Recordings to process')
    source.add_argument('--bids-root', help='Path to BIDS root directory')
    source.add_argument('--task', help='BIDS task name')
    source.add_argument('--subjects', nargs='+', help='BIDS subjects to process')

    parser.add_argument('--output', help='Path to output directory')
    parser.add_argument('--config', help='Configuration file path')
    parser.add_argument('--create-config', help='Create default config file at specified path')
    parser.add_argument('--label', help='Label appended to saved file names')
    parser.add_argument('--stim1', help='Stimulus 1 markers (comma-separated)')
    parser.add_argument('--stim2', help='Stimulus 2 markers (comma-separated)')
    parser.add_argument('--tmin', type=float, help='Epoch start (s)')
    parser.add_argument('--tmax', type=float, help='Epoch end (s)')
    parser.add_argument('--l-freq', type=float, help='High-pass cutoff (Hz)')
    parser.add_argument('--h-freq', type=float, help='Low-pass cutoff (Hz)')
    parser.add_argument('--resample', type=float, help='New sampling rate (Hz)')
    parser.add_argument('--drop-channels', nargs='+', help='Channels to remove')
    parser.add_argument('--montage', help='Montage name or channel location file')
    parser.add_argument('--threshold', help="Amplitude threshold in uV, or 'auto'")
    parser.add_argument('--condition', type=int, choices=[1, 2], help='Stimulus to extract')
    parser.add_argument('--solver', choices=['lsmr', 'lstsq'], help='GLM solver')
    parser.add_argument('--version', action='version', version=f'erp-unfold v{__version__}')

    args = parser.parse_args(argv)

    if args.create_config:
        create_config_file(args.create_config, create_default_config())
        return None

    if not args.output:
        parser.error("--output is required unless using --create-config")

    try:
        config = BatchConfig.from_dict(build_config(args))
    except ConfigurationError as e:
        parser.error(str(e))

    loader = load_recording
    if args.bids_root:
        if not args.task:
            parser.error("--task is required with --bids-root")
        if not validate_bids_structure(args.bids_root):
            parser.error(f"Invalid BIDS directory structure: {args.bids_root}")
        sources = args.subjects or get_subject_list(args.bids_root)
        loader = partial(load_bids_recording, bids_root=args.bids_root, task=args.task)
    elif args.files:
        sources = args.files
    elif args.input_dir:
        sources = list_recordings(args.input_dir)
    else:
        parser.error("One of --input-dir, --files or --bids-root is required")

    if not sources:
        print("No recordings found. Shutting down")
        return None

    create_config_file(os.path.join(args.output, 'batch_config.json'), config)

    try:
        return run_batch_processing(sources, config, args.output, loader)
    except Exception as e:
        print(f"Pipeline failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
