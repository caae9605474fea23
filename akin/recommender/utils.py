"""Utility functions for the Akin engine.

This module provides helpers for bulk-loading activity from CSV, exporting
persisted item weights as a sparse matrix, and saving or restoring
in-memory store snapshots.
"""

import logging
from datetime import timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import joblib
import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix

from akin.recommender.store import (
    USER_ACTIVITY,
    USER_ITEM_WEIGHTS,
    DocumentStore,
    InMemoryDocumentStore,
)

# Configure module logger
logger = logging.getLogger(__name__)

# Snapshot artifact filename
SNAPSHOT_FILENAME = "store_snapshot.joblib"

DEFAULT_ACTION = "view"


def load_activity_csv(
    csv_path: str,
    store: DocumentStore,
    user_col: str = "user_id",
    item_col: str = "item_id",
    action_col: Optional[str] = "action",
    metadata_col: Optional[str] = "item_metadata",
    timestamp_col: Optional[str] = "timestamp",
) -> int:
    """Load CSV activity data into the ``user_activity`` collection.

    Reads a CSV file of user-item interactions and bulk-inserts one raw
    activity row per line. The action, metadata and timestamp columns are
    optional. A missing action column defaults to "view", and a missing
    timestamp means the activity happened now.

    Args:
        csv_path: Path to CSV file containing interaction data.
        store: Document store to load into.
        user_col: Name of the column containing user identifiers.
        item_col: Name of the column containing item identifiers.
        action_col: Name of the column containing the action taken.
        metadata_col: Name of the column containing item metadata.
        timestamp_col: Name of the column containing event timestamps.

    Returns:
        Number of activity rows inserted.

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If CSV is missing required columns or is empty.

    Example:
        >>> store = InMemoryDocumentStore()
        >>> load_activity_csv("data/fake_activity.csv", store)
        1000
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    logger.info(f"Loading CSV from {csv_path}")
    df = pd.read_csv(csv_path)

    # Validate required columns
    required_columns = {user_col, item_col}
    if not required_columns.issubset(df.columns):
        missing = required_columns - set(df.columns)
        raise ValueError(f"CSV missing required columns: {missing}")

    if df.empty:
        raise ValueError("Cannot load activity from empty CSV")

    if timestamp_col and timestamp_col in df.columns:
        timestamps = [
            ts.to_pydatetime() for ts in pd.to_datetime(df[timestamp_col], utc=True)
        ]
    else:
        now = pd.Timestamp.now(tz=timezone.utc).to_pydatetime()
        timestamps = [now] * len(df)

    has_action = bool(action_col) and action_col in df.columns
    has_metadata = bool(metadata_col) and metadata_col in df.columns

    rows = []
    for record, occurred_at in zip(df.to_dict(orient="records"), timestamps):
        metadata: Any = None
        if has_metadata and pd.notna(record[metadata_col]):
            metadata = record[metadata_col]
        action = DEFAULT_ACTION
        if has_action and pd.notna(record[action_col]):
            action = str(record[action_col])

        rows.append({
            "user": _to_python(record[user_col]),
            "item": _to_python(record[item_col]),
            "item_metadata": _to_python(metadata),
            "action": action,
            "occurred_at": occurred_at,
        })

    store.bulk_insert(USER_ACTIVITY, rows)

    logger.info(f"Loaded {len(rows)} activity records")
    logger.info(f"Unique users: {df[user_col].nunique()}")
    logger.info(f"Unique items: {df[item_col].nunique()}")

    return len(rows)


def _to_python(value: Any) -> Any:
    # numpy scalars -> plain python values
    if isinstance(value, np.generic):
        return value.item()
    return value


def build_user_item_matrix(
    store: DocumentStore,
) -> Tuple[csr_matrix, Dict[Any, int], Dict[Any, int]]:
    """Export persisted item weights as a sparse user-item matrix.

    Returns:
        A tuple containing:
            - Sparse CSR matrix of shape (n_users, n_items) holding weights
            - Dictionary mapping user ID to matrix row index
            - Dictionary mapping item ID to matrix column index
    """
    user_id_to_idx: Dict[Any, int] = {}
    item_id_to_idx: Dict[Any, int] = {}
    row_indices = []
    col_indices = []
    data = []

    for row in store.stream_all(USER_ITEM_WEIGHTS):
        user_idx = user_id_to_idx.setdefault(row["user"], len(user_id_to_idx))
        for entry in row.get("item_weights", []):
            item_idx = item_id_to_idx.setdefault(entry["item"], len(item_id_to_idx))
            row_indices.append(user_idx)
            col_indices.append(item_idx)
            data.append(entry["weight"])

    n_users = len(user_id_to_idx)
    n_items = len(item_id_to_idx)

    user_item_matrix = csr_matrix(
        (np.array(data, dtype=np.float64), (row_indices, col_indices)),
        shape=(n_users, n_items),
    )

    if n_users and n_items:
        logger.info(f"Matrix shape: {user_item_matrix.shape}")
        logger.info(f"Matrix density: {user_item_matrix.nnz / (n_users * n_items):.4%}")

    return user_item_matrix, user_id_to_idx, item_id_to_idx


def save_store_snapshot(
    store: InMemoryDocumentStore,
    output_dir: str,
    snapshot_filename: str = SNAPSHOT_FILENAME,
) -> Path:
    """Save every collection of an in-memory store to disk.

    Creates the directory if it doesn't exist.

    Returns:
        Path of the written snapshot file.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    snapshot_path = output_path / snapshot_filename
    joblib.dump(store.dump(), snapshot_path)
    logger.info(f"Saved store snapshot to {snapshot_path}")
    return snapshot_path


def load_store_snapshot(
    snapshot_dir: str,
    snapshot_filename: str = SNAPSHOT_FILENAME,
) -> InMemoryDocumentStore:
    """Restore an in-memory store from a snapshot directory.

    Raises:
        FileNotFoundError: If the directory or snapshot file is missing.
    """
    snapshot_path = Path(snapshot_dir)
    if not snapshot_path.exists():
        raise FileNotFoundError(f"Snapshot directory does not exist: {snapshot_dir}")

    snapshot_file = snapshot_path / snapshot_filename
    if not snapshot_file.exists():
        raise FileNotFoundError(f"Snapshot file not found: {snapshot_file}")

    collections = joblib.load(snapshot_file)
    logger.info(
        f"Loaded store snapshot from {snapshot_file}",
        extra={"collections": {name: len(rows) for name, rows in collections.items()}},
    )
    return InMemoryDocumentStore(collections)


def check_snapshot_exists(
    snapshot_dir: str, snapshot_filename: str = SNAPSHOT_FILENAME
) -> bool:
    """Check if a store snapshot exists in ``snapshot_dir``."""
    return (Path(snapshot_dir) / snapshot_filename).exists()
