"""
End-to-end orchestrator runs against the fake tools.
"""
import json

import pytest

from conftest import write_sources, write_title_cards
from maketalk.errors import FatalPrecondition, NamingConventionError, PipelineDeferred, TitleSpecInvalid
from maketalk.orchestrator.pipeline import PipelineOrchestrator
from maketalk.orchestrator.state import EntryMode, Stage
from maketalk.services.prompter import ScriptedPrompter
from maketalk.services.stage_manifest import StageManifest

CARDS = [
    {"number": "01", "title": "Getting Started", "description": "Where we begin"},
    {"number": "02", "title": "Going Further", "description": "Where we end"},
]


def _names(paths):
    return [p.name for p in paths]


class TestFreshRun:
    """Fresh run through the prompt stage, then --continue."""

    @pytest.mark.asyncio
    async def test_full_presentation_in_section_order(self, project_dir, workspace, make_context):
        write_sources(project_dir, "01-a.mov", "01-b.mov", "02-c.mov")

        with pytest.raises(PipelineDeferred) as excinfo:
            await PipelineOrchestrator(make_context(), EntryMode.FRESH).run()

        assert "title" in excinfo.value.reason.lower()
        assert excinfo.value.instructions[-1] == "Run: maketalk --continue"
        assert _names(workspace.list_files(Stage.CONVERT)) == ["01-a.mp4", "01-b.mp4", "02-c.mp4"]
        assert _names(workspace.list_files(Stage.MERGE)) == ["01-section.mp4", "02-section.mp4"]
        assert workspace.section_path("01").read_text() == "[01-a.mov]\n[01-b.mov]\n"
        assert workspace.section_path("02").read_text() == "[02-c.mov]\n"
        assert _names(workspace.list_files(Stage.TRANSCRIBE)) == ["01-section.txt", "02-section.txt"]

        combined = workspace.combined_transcript_path.read_text()
        assert combined.startswith("# Video Transcriptions\n\n## Section 01\n\nTalk about 01-section")
        assert combined.index("## Section 01") < combined.index("## Section 02")
        assert workspace.prompt_path.read_text().endswith(combined)

        write_title_cards(project_dir, CARDS)
        outcome = await PipelineOrchestrator(make_context(), EntryMode.RESUME_AFTER_TITLES).run()

        assert outcome.output == workspace.final_output_path
        assert outcome.output.read_text() == (
            "[01-title.png]\n[01-a.mov]\n[01-b.mov]\n"
            "[02-title.png]\n[02-c.mov]\n"
        )
        assert set(outcome.step_log) == {"title_cards", "final"}
        # Continuing never touches upstream output
        assert _names(workspace.list_files(Stage.CONVERT)) == ["01-a.mp4", "01-b.mp4", "02-c.mp4"]

    @pytest.mark.asyncio
    async def test_naming_violation_before_any_work(self, project_dir, workspace, make_context):
        write_sources(project_dir, "01-a.mov", "intro.mov", "notes.mov")

        with pytest.raises(NamingConventionError) as excinfo:
            await PipelineOrchestrator(make_context(), EntryMode.FRESH).run()

        assert excinfo.value.files == ["intro.mov", "notes.mov"]
        assert workspace.list_files(Stage.CONVERT) == []

    @pytest.mark.asyncio
    async def test_no_sources_is_fatal(self, make_context):
        with pytest.raises(FatalPrecondition, match="No .mov files"):
            await PipelineOrchestrator(make_context(), EntryMode.FRESH).run()

    @pytest.mark.asyncio
    async def test_rejected_fresh_run_keeps_earlier_output(self, project_dir, workspace, make_context):
        converted = workspace.stage_dir(Stage.CONVERT) / "01-a.mp4"
        converted.write_text("[01-a.mov]\n")
        section = workspace.section_path("01")
        section.write_text("[01-a.mov]\n")
        write_sources(project_dir, "01-a.mov", "intro.mov")

        with pytest.raises(NamingConventionError):
            await PipelineOrchestrator(make_context(), EntryMode.FRESH).run()

        assert converted.read_text() == "[01-a.mov]\n"
        assert section.read_text() == "[01-a.mov]\n"

        (project_dir / "01-a.mov").unlink()
        (project_dir / "intro.mov").unlink()
        with pytest.raises(FatalPrecondition, match="No .mov files"):
            await PipelineOrchestrator(make_context(), EntryMode.FRESH).run()

        assert converted.exists()
        assert section.exists()

    @pytest.mark.asyncio
    async def test_failed_item_is_left_out(self, project_dir, workspace, make_context):
        write_sources(project_dir, "01-a.mov", "02-fail.mov", "03-c.mov")

        with pytest.raises(PipelineDeferred):
            await PipelineOrchestrator(make_context(), EntryMode.FRESH).run()

        assert _names(workspace.list_files(Stage.CONVERT)) == ["01-a.mp4", "03-c.mp4"]
        assert _names(workspace.list_files(Stage.MERGE)) == ["01-section.mp4", "03-section.mp4"]

    @pytest.mark.asyncio
    async def test_existing_spec_reused(self, project_dir, workspace, make_context):
        write_sources(project_dir, "01-a.mov", "02-c.mov")
        write_title_cards(project_dir, CARDS)
        prompter = ScriptedPrompter([True])

        outcome = await PipelineOrchestrator(make_context(prompter), EntryMode.FRESH).run()

        assert prompter.asked == ["Do you want to use the existing title cards?"]
        assert not workspace.prompt_path.exists()
        assert outcome.output.read_text() == "[01-title.png]\n[01-a.mov]\n[02-title.png]\n[02-c.mov]\n"


class TestDimensionMismatch:
    """Operator decision on mismatched frame sizes."""

    @pytest.mark.asyncio
    async def test_refusal_defers_without_converting(self, project_dir, workspace, make_context):
        write_sources(project_dir, "01-a.mov", content=json.dumps({"width": 1280, "height": 720}))
        write_sources(project_dir, "02-b.mov", "03-c.mov")
        prompter = ScriptedPrompter([False])

        with pytest.raises(PipelineDeferred, match="different dimensions"):
            await PipelineOrchestrator(make_context(prompter), EntryMode.FRESH).run()

        assert "1920x1080" in prompter.asked[0]
        assert workspace.list_files(Stage.CONVERT) == []

    @pytest.mark.asyncio
    async def test_acceptance_converts_everything(self, project_dir, workspace, make_context):
        write_sources(project_dir, "01-a.mov", content=json.dumps({"width": 1280, "height": 720}))
        write_sources(project_dir, "02-b.mov")
        prompter = ScriptedPrompter([True], default=False)

        with pytest.raises(PipelineDeferred):
            await PipelineOrchestrator(make_context(prompter), EntryMode.FRESH).run()

        # Tie between the two sizes goes to the first file
        assert "1280x720" in prompter.asked[0]
        assert _names(workspace.list_files(Stage.CONVERT)) == ["01-a.mp4", "02-b.mp4"]


class TestTemplatePath:
    """Runs without a transcriber."""

    @pytest.mark.asyncio
    async def test_template_written_and_deferred(self, project_dir, workspace, make_context):
        write_sources(project_dir, "01-a.mov", "02-c.mov")

        with pytest.raises(PipelineDeferred) as excinfo:
            await PipelineOrchestrator(make_context(transcriber=False), EntryMode.FRESH).run()

        assert "maketalk --continue" in " ".join(excinfo.value.instructions)
        assert workspace.list_files(Stage.EXTRACT_AUDIO) == []
        cards = json.loads(workspace.title_cards_file.read_text())
        assert cards["title_cards"][0] == {
            "number": "01",
            "title": "Section 01 Title",
            "description": "Description for section 01",
        }
        assert len(cards["instructions"]) == 4
        sections = json.loads(workspace.sections_file.read_text())
        assert [s["filename"] for s in sections["sections"]] == ["01-section.mp4", "02-section.mp4"]
        assert sections["sections"][0]["duration"] == "10.00s"

    @pytest.mark.asyncio
    async def test_existing_cards_preserved(self, project_dir, workspace, make_context):
        write_sources(project_dir, "01-a.mov", "02-c.mov")
        write_title_cards(project_dir, [CARDS[0]], notes="keep me")
        prompter = ScriptedPrompter()

        with pytest.raises(PipelineDeferred):
            await PipelineOrchestrator(make_context(prompter, transcriber=False), EntryMode.FRESH).run()

        cards = json.loads(workspace.title_cards_file.read_text())
        assert cards["title_cards"][0]["title"] == "Getting Started"
        assert cards["title_cards"][1]["title"] == "Section 02 Title"
        assert cards["notes"] == "keep me"
        assert prompter.asked == []

    @pytest.mark.asyncio
    async def test_malformed_spec_is_not_overwritten(self, project_dir, workspace, make_context):
        write_sources(project_dir, "01-a.mov")
        workspace.title_cards_file.write_text("{not json")

        with pytest.raises(TitleSpecInvalid):
            await PipelineOrchestrator(make_context(transcriber=False), EntryMode.FRESH).run()
        assert workspace.title_cards_file.read_text() == "{not json"


class TestResume:
    """Entry preconditions of the resume modes."""

    @pytest.mark.asyncio
    async def test_resume_after_conversion_requires_converted(self, make_context):
        with pytest.raises(FatalPrecondition, match="No converted videos"):
            await PipelineOrchestrator(make_context(), EntryMode.RESUME_AFTER_CONVERSION).run()

    @pytest.mark.asyncio
    async def test_resume_after_conversion_clears_downstream(self, project_dir, workspace, make_context):
        write_sources(project_dir, "01-a.mov", "02-c.mov")
        with pytest.raises(PipelineDeferred):
            await PipelineOrchestrator(make_context(), EntryMode.FRESH).run()
        stale = workspace.stage_dir(Stage.TITLE_CARDS) / "07-title.mp4"
        stale.write_text("stale")

        with pytest.raises(PipelineDeferred):
            await PipelineOrchestrator(make_context(), EntryMode.RESUME_AFTER_CONVERSION).run()

        assert not stale.exists()
        assert _names(workspace.list_files(Stage.MERGE)) == ["01-section.mp4", "02-section.mp4"]

    @pytest.mark.asyncio
    async def test_interrupted_conversion_is_not_resumable(self, workspace, make_context):
        (workspace.stage_dir(Stage.CONVERT) / "01-a.mp4").write_text("partial")
        async with StageManifest(workspace.manifest_db_path) as manifest:
            run_id = await manifest.start_run(EntryMode.FRESH)
            await manifest.stage_started(run_id, Stage.CONVERT)

        with pytest.raises(FatalPrecondition, match="interrupted"):
            await PipelineOrchestrator(make_context(), EntryMode.RESUME_AFTER_CONVERSION).run()

    @pytest.mark.asyncio
    async def test_continue_requires_title_spec(self, make_context):
        with pytest.raises(TitleSpecInvalid, match="title_cards.json not found"):
            await PipelineOrchestrator(make_context(), EntryMode.RESUME_AFTER_TITLES).run()

    @pytest.mark.asyncio
    async def test_continue_requires_sections(self, project_dir, make_context):
        write_title_cards(project_dir, CARDS)
        with pytest.raises(FatalPrecondition, match="No section videos"):
            await PipelineOrchestrator(make_context(), EntryMode.RESUME_AFTER_TITLES).run()

    @pytest.mark.asyncio
    async def test_continue_with_uncovered_section(self, project_dir, workspace, make_context):
        write_sources(project_dir, "01-a.mov", "02-c.mov")
        with pytest.raises(PipelineDeferred):
            await PipelineOrchestrator(make_context(), EntryMode.FRESH).run()
        write_title_cards(project_dir, [CARDS[0]])

        with pytest.raises(TitleSpecInvalid, match="section\\(s\\) 02"):
            await PipelineOrchestrator(make_context(), EntryMode.RESUME_AFTER_TITLES).run()

    @pytest.mark.asyncio
    async def test_resume_skips_stages_without_input(self, workspace, make_context):
        converted = workspace.stage_dir(Stage.CONVERT)
        (converted / "01-a.mp4").write_text("[01-a.mov]\n")
        (converted / "01-b.mp4").write_text(json.dumps({"broken": True}))

        with pytest.raises(FatalPrecondition, match="No work discovered for final"):
            await PipelineOrchestrator(make_context(), EntryMode.RESUME_AFTER_CONVERSION).run()

        assert workspace.list_files(Stage.MERGE) == []
        assert workspace.list_files(Stage.TRANSCRIBE) == []
