"""
Audit trail: config hashing and cycle trace snapshots.
"""

import hashlib
import json
from pathlib import Path
from typing import Any

from ..observability.logging import get_logger
from ..observability.probe import clear_trace_metrics, get_trace_metrics
from .orchestrator import CycleResult

logger = get_logger(__name__)

# Config hash recorded at startup for audit snapshots
CONFIG_SHA256: str = ""


def _reset_config_hash_for_tests():
    """Reset config hash for test isolation."""
    global CONFIG_SHA256
    CONFIG_SHA256 = ""


def freeze_config_and_hash(config: Any) -> str:
    """
    Freeze configuration at startup and generate a deterministic hash.

    Args:
        config: Pydantic settings object (or anything JSON-serializable)

    Returns:
        SHA256 hash of the configuration
    """
    global CONFIG_SHA256

    payload = config.model_dump(mode="json") if hasattr(config, "model_dump") else config
    blob = json.dumps(payload, default=str, sort_keys=True, separators=(",", ":")).encode("utf-8")
    CONFIG_SHA256 = hashlib.sha256(blob).hexdigest()

    logger.info(f"CONFIG_SHA256 {CONFIG_SHA256}")
    return CONFIG_SHA256


def get_config_hash() -> str:
    """Get the current config hash."""
    return CONFIG_SHA256


def create_cycle_snapshot(result: CycleResult) -> dict[str, Any]:
    """
    Create a trace snapshot of a finished cycle.

    Args:
        result: The cycle result returned by ``TradingOrchestrator.run_cycle``

    Returns:
        JSON-serializable snapshot dictionary
    """
    state = result.state
    timings = {
        op: {"duration_ms": data["duration_ms"], "success": data["success"]}
        for op, data in get_trace_metrics(state.cycle_id).items()
    }

    return {
        "trace_id": state.cycle_id,
        "config_sha256": get_config_hash(),
        "duration_s": result.duration,
        "health": result.health.to_dict(),
        "execution_path": result.execution_path,
        "stages": [
            {
                "stage": record.stage_name,
                "status": record.status.value,
                "duration_s": record.duration,
                "error": record.error,
                **record.metadata,
            }
            for record in result.stages
        ],
        "state": state.summary(),
        "errors": [error.to_dict() for error in state.errors],
        "timings_ms": timings,
    }


def save_cycle_snapshot(snapshot: dict[str, Any], artifacts_dir: Path | str = "artifacts") -> Path:
    """
    Save a cycle snapshot to ``artifacts_dir/cycle_trace_<trace_id>.json``.

    Per-trace probe timings are released once the snapshot is written.
    """
    artifacts_path = Path(artifacts_dir)
    artifacts_path.mkdir(parents=True, exist_ok=True)

    trace_id = snapshot["trace_id"]
    snapshot_file = artifacts_path / f"cycle_trace_{trace_id}.json"
    snapshot_file.write_text(json.dumps(snapshot, indent=2, default=str))
    clear_trace_metrics(trace_id)

    logger.info(f"Saved cycle snapshot: {snapshot_file}")
    return snapshot_file


def finish_cycle_trace(
    result: CycleResult, persist: bool, artifacts_dir: Path | str = "artifacts"
) -> Path | None:
    """
    Close out a cycle's audit trail.

    Writes the snapshot when ``persist`` is set. The cycle's probe timings are
    released either way, so recurring cycles do not accumulate them.
    """
    snapshot_file = None
    if persist:
        try:
            snapshot_file = save_cycle_snapshot(create_cycle_snapshot(result), artifacts_dir)
        except OSError as e:
            logger.warning(f"Failed to save cycle snapshot: {e}")

    clear_trace_metrics(result.state.cycle_id)
    return snapshot_file
