"""Hydra callbacks for MLflow integration.

``upload_job_artifacts`` uploads the Hydra job log and the resolved job
config to the active MLflow run, so model output (including rank 0 setup
summaries) can be read next to the run's metrics. ``MLflowLogCallback``
does the same when a job ends with a run still active.
"""

import logging
from pathlib import Path
from typing import Any

from hydra.core.utils import JobReturn
from hydra.experimental.callback import Callback
from omegaconf import DictConfig

log = logging.getLogger(__name__)


def _job_artifacts():
    from hydra.core.hydra_config import HydraConfig

    if not HydraConfig.initialized():
        return []
    hc = HydraConfig.get()
    output_dir = Path(hc.runtime.output_dir)
    paths = [output_dir / f"{hc.job.name}.log"]
    if hc.output_subdir:
        paths.append(output_dir / hc.output_subdir / "config.yaml")
    return paths


def upload_job_artifacts(artifact_path: str = "logs") -> int:
    """Upload job log and config to the active MLflow run; returns the count."""
    import mlflow

    if not mlflow.active_run():
        log.debug("No active MLflow run, skipping log upload")
        return 0

    uploaded = 0
    for path in _job_artifacts():
        if path.exists():
            mlflow.log_artifact(str(path), artifact_path=artifact_path)
            log.info(f"Uploaded {path.name} to MLflow")
            uploaded += 1
        else:
            log.debug(f"Job artifact not found: {path}")
    return uploaded


class MLflowLogCallback(Callback):
    """Callback to log Hydra job output to MLflow as artifacts.

    Configuration (in the ``hydra`` section of the run config):

    .. code-block:: yaml

        hydra:
          callbacks:
            mlflow_log:
              _target_: utils.hydra.callbacks.MLflowLogCallback
              artifact_path: logs
    """

    def __init__(self, artifact_path: str = "logs") -> None:
        self.artifact_path = artifact_path

    def on_job_end(self, config: DictConfig, job_return: JobReturn, **kwargs: Any) -> None:
        try:
            upload_job_artifacts(self.artifact_path)
        except Exception as e:
            # Don't fail the job if logging fails
            log.warning(f"Failed to upload job artifacts to MLflow: {e}")
