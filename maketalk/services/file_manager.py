"""
Workspace management for maketalk.

Owns the staging tree under {project_dir}/{workspace_dir}/ with one
subdirectory per stage that produces files. Stages only write into their own
directory; resuming clears exactly the directories downstream of the last
preserved stage so stale output can never pass for current output.
"""
import hashlib
import logging
import shutil
from pathlib import Path
from typing import Optional

from maketalk.config import Settings, settings as default_settings
from maketalk.orchestrator.state import Stage, downstream_of

logger = logging.getLogger(__name__)

STAGE_DIRECTORIES = {
    Stage.CONVERT: "converted_videos",
    Stage.MERGE: "sections",
    Stage.EXTRACT_AUDIO: "audio",
    Stage.TRANSCRIBE: "transcriptions",
    Stage.TITLE_CARDS: "title_cards",
}

# Files a stage writes into the workspace root instead of a subdirectory
STAGE_ROOT_FILES = {
    Stage.PROMPT: ("transcriptions_combined.md", "title_prompt.txt"),
    Stage.FINAL: ("final_concat.txt",),
}


class WorkspaceStore:
    """
    Manage the on-disk staging area for one presentation project.

    Creates structured directories:
    - {root}/converted_videos/ - Stage 1 per-part MP4s
    - {root}/sections/ - Stage 2 canonical NN-section.mp4
    - {root}/audio/ - Stage 3 NN-section.wav
    - {root}/transcriptions/ - Stage 4 NN-section.txt
    - {root}/title_cards/ - Stage 6 NN-title.png / NN-title.mp4

    Implements path traversal protection so item names cannot escape root.
    """

    def __init__(self, project_dir: str | Path = ".", settings: Optional[Settings] = None):
        """
        Initialize WorkspaceStore for a project directory.

        Args:
            project_dir: Directory holding the raw clips and title_cards.json
            settings: Settings instance (default: module singleton)
        """
        self.settings = settings or default_settings
        self.project_dir = Path(project_dir).resolve()
        self.root = (self.project_dir / self.settings.storage.workspace_dir).resolve()

    def ensure_layout(self) -> None:
        """Create the root and every stage directory if absent. Never destructive."""
        self.root.mkdir(parents=True, exist_ok=True)
        for name in STAGE_DIRECTORIES.values():
            (self.root / name).mkdir(exist_ok=True)

    def reset_downstream_of(self, stage: Optional[Stage]) -> list[Stage]:
        """
        Empty every stage after `stage` (all stages for None).

        Directories are deleted and recreated; root-level stage files are
        removed. Missing directories and files are not an error.

        Returns:
            The stages that were reset
        """
        reset = downstream_of(stage)
        for target in reset:
            dirname = STAGE_DIRECTORIES.get(target)
            if dirname:
                path = self.root / dirname
                shutil.rmtree(path, ignore_errors=True)
                path.mkdir(parents=True, exist_ok=True)
            for filename in STAGE_ROOT_FILES.get(target, ()):
                (self.root / filename).unlink(missing_ok=True)

        logger.debug(f"Reset stages: {', '.join(s.value for s in reset)}")
        return reset

    def stage_dir(self, stage: Stage) -> Path:
        """
        Directory owned by `stage`.

        Raises:
            ValueError: If the stage writes no directory of its own
        """
        dirname = STAGE_DIRECTORIES.get(stage)
        if dirname is None:
            raise ValueError(f"Stage {stage.value} has no output directory")
        return self.root / dirname

    def list_files(self, stage: Stage, pattern: str = "*") -> list[Path]:
        """Sorted regular files in the stage directory matching a glob."""
        directory = self.stage_dir(stage)
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.glob(pattern) if p.is_file())

    def is_populated(self, stage: Stage, pattern: str = "*") -> bool:
        return bool(self.list_files(stage, pattern))

    def _inside(self, base: Path, filename: str) -> Path:
        path = (base / filename).resolve()
        # Path traversal protection
        if not path.is_relative_to(self.root):
            raise ValueError(f"Invalid workspace path: {filename}")
        return path

    # Stage artifact paths

    def converted_path(self, stem: str) -> Path:
        return self._inside(self.stage_dir(Stage.CONVERT), f"{stem}.mp4")

    def section_path(self, section_id: str) -> Path:
        return self._inside(self.stage_dir(Stage.MERGE), f"{section_id}-section.mp4")

    def audio_path(self, section_id: str) -> Path:
        return self._inside(self.stage_dir(Stage.EXTRACT_AUDIO), f"{section_id}-section.wav")

    def transcript_path(self, section_id: str) -> Path:
        return self._inside(self.stage_dir(Stage.TRANSCRIBE), f"{section_id}-section.txt")

    def title_image_path(self, section_id: str) -> Path:
        return self._inside(self.stage_dir(Stage.TITLE_CARDS), f"{section_id}-title.png")

    def title_video_path(self, section_id: str) -> Path:
        return self._inside(self.stage_dir(Stage.TITLE_CARDS), f"{section_id}-title.mp4")

    def root_file(self, filename: str) -> Path:
        return self._inside(self.root, filename)

    @property
    def combined_transcript_path(self) -> Path:
        return self.root_file(STAGE_ROOT_FILES[Stage.PROMPT][0])

    @property
    def prompt_path(self) -> Path:
        return self.root_file(STAGE_ROOT_FILES[Stage.PROMPT][1])

    @property
    def final_concat_path(self) -> Path:
        return self.root_file(STAGE_ROOT_FILES[Stage.FINAL][0])

    @property
    def manifest_db_path(self) -> Path:
        return self.root_file(self.settings.storage.manifest_db)

    # Externally owned documents and the deliverable live in the project dir

    @property
    def title_cards_file(self) -> Path:
        return self.project_dir / self.settings.storage.title_cards_file

    @property
    def sections_file(self) -> Path:
        return self.project_dir / self.settings.storage.sections_file

    @property
    def final_output_path(self) -> Path:
        return self.project_dir / self.settings.storage.final_output

    def fingerprint(self, stage: Stage) -> str:
        """
        SHA-1 over (name, size, mtime) of everything a stage has written.

        Cheap enough for multi-gigabyte videos; content hashing is not needed
        to notice files that were replaced or removed after the stage ran.
        """
        paths: list[Path] = []
        if stage in STAGE_DIRECTORIES:
            paths.extend(self.list_files(stage))
        paths.extend(
            p for p in (self.root / f for f in STAGE_ROOT_FILES.get(stage, ())) if p.is_file()
        )

        digest = hashlib.sha1()
        for path in sorted(paths):
            stat = path.stat()
            digest.update(f"{path.name}\0{stat.st_size}\0{stat.st_mtime_ns}\n".encode())
        return digest.hexdigest()
