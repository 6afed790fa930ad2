from manuals.ingestion import INSTRUCTION_LABEL, create_sources, flatten_sources
from manuals.models import ExtractedFile, ManualSource, SourceKind


def _file(text, label="doc.txt", size=10, mime="text/plain"):
    return ExtractedFile(raw_text=text, label=label, size_bytes=size, mime_type=mime)


def test_files_then_instruction_in_order():
    sources = create_sources(
        [_file("first body", "a.txt"), _file("second body", "b.pdf", 2048, "application/pdf")],
        "  Be concise.  ",
    )

    assert [s.kind for s in sources] == [SourceKind.FILE, SourceKind.FILE, SourceKind.INSTRUCTION]
    assert [s.label for s in sources] == ["a.txt", "b.pdf", INSTRUCTION_LABEL]
    assert sources[1].metadata.size == 2048
    assert sources[1].metadata.mime == "application/pdf"
    assert sources[2].text == "Be concise."
    assert sources[2].metadata is None
    assert len({s.created_at for s in sources}) == 1
    assert len({s.id for s in sources}) == 3


def test_blank_file_is_skipped_with_warning(manual_logs):
    sources = create_sources([_file("   \n", "scan.pdf"), _file("usable", "ok.txt")])

    assert [s.label for s in sources] == ["ok.txt"]
    assert any(
        r.levelname == "WARNING" and "scan.pdf" in r.getMessage()
        for r in manual_logs.records
    )


def test_nothing_usable_returns_empty_list():
    assert create_sources([_file("")], "   ") == []
    assert create_sources() == []


def test_flatten_renders_headers_and_blank_line_separator():
    sources = [
        ManualSource(kind=SourceKind.FILE, label="a.txt", text="\n alpha \n"),
        ManualSource(kind=SourceKind.INSTRUCTION, label="", text="beta"),
    ]
    assert flatten_sources(sources) == "=== a.txt ===\nalpha\n\n=== Instruction ===\nbeta"
