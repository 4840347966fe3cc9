"""
Model Store

Purpose:
Save and load every component's exported state as JSON artifacts.

Layout:
    <models_dir>/
        tier1_amount_analyzer.json
        ...
        tier4_fraud_decision.json
        models_metadata.json        (manifest)

Design Contract:
- Artifacts are written to a temporary file and renamed into place, so a
  crash never leaves a half-written artifact behind.
- Loading is best-effort per artifact: a missing artifact is skipped (the
  component stays heuristic); a corrupt one is logged as a PersistenceError
  and counted as failed. Neither stops startup.
"""

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from fraud_ensemble import __version__
from fraud_ensemble.components.base import EnsembleComponent
from fraud_ensemble.components.registry import ComponentRegistry
from fraud_ensemble.config import settings
from fraud_ensemble.errors import ModelImportError, PersistenceError


logger = logging.getLogger(__name__)


class LoadReport(BaseModel):
    loaded: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)

    @property
    def all_loaded(self) -> bool:
        return not self.skipped and not self.failed


def artifact_name(component: EnsembleComponent) -> str:
    return f"tier{component.tier}_{component.component_id}.json"


def _atomic_write_json(path: Path, payload: Dict[str, Any]) -> None:
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


class ModelStore:
    """
    Reads and writes component artifacts under one directory.

    Args:
        models_dir: Artifact directory (created on save)
        manifest_filename: Manifest file name inside models_dir
    """

    def __init__(self, models_dir: Optional[str] = None, manifest_filename: Optional[str] = None):
        self.models_dir = Path(models_dir or settings.MODELS_DIR)
        self.manifest_filename = manifest_filename or settings.MANIFEST_FILENAME

    @property
    def manifest_path(self) -> Path:
        return self.models_dir / self.manifest_filename

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save_component(self, component: EnsembleComponent) -> Path:
        """
        Raises:
            PersistenceError: Artifact could not be written
        """
        path = self.models_dir / artifact_name(component)
        try:
            self.models_dir.mkdir(parents=True, exist_ok=True)
            _atomic_write_json(path, component.export_model())
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Could not save {component.component_id} to {path}: {exc}") from exc
        return path

    def save_all(self, registry: ComponentRegistry) -> Dict[str, Any]:
        """
        Save every component and write the manifest.

        Returns:
            Manifest dict {saved_at, version, component_count, artifacts}

        Raises:
            PersistenceError: Any artifact or the manifest could not be written
        """
        artifacts = {}
        for component in registry.iter_components():
            path = self.save_component(component)
            artifacts[component.component_id] = path.name

        manifest = {
            "saved_at": datetime.now().isoformat(),
            "version": __version__,
            "component_count": len(artifacts),
            "artifacts": artifacts,
        }
        try:
            _atomic_write_json(self.manifest_path, manifest)
        except OSError as exc:
            raise PersistenceError(f"Could not write manifest {self.manifest_path}: {exc}") from exc

        logger.info(f"✅ Saved {len(artifacts)} model artifacts to {self.models_dir}")
        return manifest

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def read_manifest(self) -> Optional[Dict[str, Any]]:
        if not self.manifest_path.exists():
            return None
        try:
            with open(self.manifest_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error(f"{PersistenceError(f'Unreadable manifest {self.manifest_path}: {exc}')}")
            return None

    def load_component(self, component: EnsembleComponent, filename: Optional[str] = None) -> bool:
        """
        Load one artifact into a component.

        Returns:
            False if the artifact does not exist

        Raises:
            PersistenceError: Artifact exists but cannot be read or imported
        """
        path = self.models_dir / (filename or artifact_name(component))
        if not path.exists():
            return False
        try:
            with open(path, "r", encoding="utf-8") as f:
                blob = json.load(f)
            component.import_model(blob)
        except ModelImportError as exc:
            raise PersistenceError(str(exc)) from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Unreadable artifact {path}: {exc}") from exc
        return True

    def load_all(self, registry: ComponentRegistry) -> LoadReport:
        """Best-effort load of every component. Never raises."""
        report = LoadReport()
        manifest = self.read_manifest()
        if manifest is None:
            logger.warning(f"⚠️  No model manifest at {self.manifest_path} - trying default artifact names")
            artifacts = {}
        else:
            artifacts = manifest.get("artifacts") or {}

        for component in registry.iter_components():
            cid = component.component_id
            try:
                if self.load_component(component, artifacts.get(cid)):
                    report.loaded.append(cid)
                else:
                    report.skipped.append(cid)
            except PersistenceError as exc:
                logger.error(f"❌ {exc} - {cid} stays on its current state")
                report.failed[cid] = str(exc)

        if report.skipped:
            logger.warning(f"⚠️  {len(report.skipped)} components have no artifact and stay heuristic")
        logger.info(f"Model load: {len(report.loaded)} loaded, {len(report.skipped)} skipped, "
                    f"{len(report.failed)} failed")
        return report
