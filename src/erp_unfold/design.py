"""
Design Matrix Module

Evaluates Wilkinson-style model formulas ('y ~ 1 + stim1 + stim2') against
the labeled event table with patsy. One row per modeled event, one column
per design column, intercept first.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import patsy

from .config import DEFAULT_FORMULA, STIM1_TYPE, STIM2_TYPE
from .errors import ConfigurationError

INTERCEPT = 'Intercept'

# Names a formula may use besides the event table columns and patsy's own
FORMULA_ENV = patsy.EvalEnvironment([{'np': np}])


@dataclass
class DesignMatrix:
    """
    Event-level design matrix.

    Attributes:
        matrix: Predictor values, shape (n_events, n_terms)
        terms: Column names in column order
        latencies: Sample index of each row's event
        event_types: Event type of each row
        formulas: Formulas the columns were built from
    """

    matrix: np.ndarray
    terms: List[str]
    latencies: np.ndarray
    event_types: List[str]
    formulas: Tuple[str, ...]

    @property
    def n_events(self) -> int:
        return self.matrix.shape[0]

    @property
    def n_terms(self) -> int:
        return self.matrix.shape[1]

    @property
    def is_rank_deficient(self) -> bool:
        """True when some columns are linear combinations of the others."""
        if self.n_events == 0:
            return False
        return bool(np.linalg.matrix_rank(self.matrix) < self.n_terms)


def _right_hand_side(formula: str) -> str:
    parts = formula.split('~')
    if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
        raise ConfigurationError(f"Malformed formula: '{formula}'")
    return parts[1]


def parse_formula(formula: str) -> List[str]:
    """
    Split a formula into its ordered right-hand side terms

    The intercept is implicit and is removed with '0' or '-1'. Categorical
    terms such as 'C(stim1)' expand into one column per level when the
    design matrix is built.

    Parameters:
    -----------
    formula : str
        Formula such as 'y ~ 1 + stim1 + stim2'

    Returns:
    --------
    terms : list of str
        Term names, 'Intercept' first when present
    """
    rhs = _right_hand_side(formula)
    try:
        desc = patsy.ModelDesc.from_formula(rhs)
    except patsy.PatsyError as e:
        raise ConfigurationError(f"Malformed formula '{formula}': {e}")

    terms = [term.name() for term in desc.rhs_termlist]
    if not terms:
        raise ConfigurationError(f"Formula '{formula}' has no terms")
    return terms


def _event_groups(event_types, n_formulas: int) -> List[Tuple[str, ...]]:
    nested = [isinstance(group, (list, tuple)) for group in event_types]
    if n_formulas == 1:
        if all(nested):
            return [tuple(t for group in event_types for t in group)]
        if any(nested):
            raise ConfigurationError("Event types mix single types and groups")
        return [tuple(event_types)]

    if not all(nested) or len(event_types) != n_formulas:
        raise ConfigurationError(
            f"{n_formulas} formulas need {n_formulas} event-type groups, "
            f"got {list(event_types)}"
        )
    return [tuple(group) for group in event_types]


def _formula_block(formula: str, rows: pd.DataFrame) -> Tuple[np.ndarray, List[str]]:
    # Columns of one formula, evaluated on the events of its group only
    if len(rows) == 0:
        terms = parse_formula(formula)
        return np.zeros((0, len(terms))), terms

    rhs = _right_hand_side(formula)
    try:
        block = patsy.dmatrix(rhs, rows, eval_env=FORMULA_ENV,
                              return_type='dataframe', NA_action='raise')
    except patsy.PatsyError as e:
        raise ConfigurationError(f"Cannot evaluate formula '{formula}': {e}")

    names = list(block.design_info.column_names)
    if not names:
        raise ConfigurationError(f"Formula '{formula}' has no terms")
    return block.to_numpy(dtype=float), names


def build_design_matrix(events: pd.DataFrame,
                        event_types: Sequence = (STIM1_TYPE, STIM2_TYPE),
                        formulas: Union[str, Sequence[str]] = (DEFAULT_FORMULA,)
                        ) -> DesignMatrix:
    """
    Build the event-level design matrix

    Each formula is evaluated with patsy on the events of its own group. With
    several formulas the blocks sit side by side, zero outside their group,
    and column names get a '<n>_' prefix.

    Parameters:
    -----------
    events : pd.DataFrame
        Labeled event table (latency, type and one column per factor)
    event_types : sequence
        Event types to model. With several formulas, one group of types per
        formula.
    formulas : str or sequence of str
        Model formulas

    Returns:
    --------
    design : DesignMatrix
        Rows for every event whose type is modeled, in event order

    Raises:
    -------
    ConfigurationError
        If a formula is malformed or references a factor the events lack
    """
    if isinstance(formulas, str):
        formulas = (formulas,)
    formulas = tuple(formulas)
    if not formulas:
        raise ConfigurationError("At least one formula is required")

    groups = _event_groups(event_types, len(formulas))
    modeled = set(t for group in groups for t in group)
    rows = events[events['type'].isin(modeled)].reset_index(drop=True)
    types = rows['type'].to_numpy()

    blocks = []
    names = []
    for number, (formula, group) in enumerate(zip(formulas, groups), start=1):
        in_group = np.isin(types, group)
        values, terms = _formula_block(formula, rows[in_group])

        block = np.zeros((len(rows), len(terms)))
        block[in_group] = values
        blocks.append(block)
        names.extend(terms if len(formulas) == 1 else [f"{number}_{t}" for t in terms])

    return DesignMatrix(
        matrix=np.hstack(blocks),
        terms=names,
        latencies=rows['latency'].to_numpy(dtype=int),
        event_types=list(types),
        formulas=formulas,
    )
