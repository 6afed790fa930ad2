from manuals.ingestion import flatten_sources
from manuals.legacy import LEGACY_LABEL, classify_header, reconstruct_sources
from manuals.models import ManualSource, SourceKind

TWO_BLOCKS = (
    "=== refunds.txt ===\n"
    "Refunds are issued within 30 days.\n"
    "\n"
    "=== User prompt ===\n"
    "Always greet the customer by name."
)


def test_two_headers_yield_two_sources():
    sources = reconstruct_sources(TWO_BLOCKS, "2024-07-01T08:23:00.000Z")

    assert [s.label for s in sources] == ["refunds.txt", "User prompt"]
    assert [s.text for s in sources] == [
        "Refunds are issued within 30 days.",
        "Always greet the customer by name.",
    ]
    assert [s.kind for s in sources] == [SourceKind.FILE, SourceKind.INSTRUCTION]
    assert all(s.created_at == "2024-07-01T08:23:00.000Z" for s in sources)


def test_no_headers_yield_single_instruction_source():
    text = "Just some pasted guidance\nwith two lines."
    sources = reconstruct_sources(text, "2024-01-01T00:00:00.000Z")

    assert len(sources) == 1
    assert sources[0].kind == SourceKind.INSTRUCTION
    assert sources[0].label == LEGACY_LABEL
    assert sources[0].text == text


def test_empty_sections_are_skipped():
    text = "=== empty.pdf ===\n\n=== notes.txt ===\nreal content"
    sources = reconstruct_sources(text, "t")
    assert [s.label for s in sources] == ["notes.txt"]


def test_only_empty_sections_fall_back_to_whole_text():
    text = "=== empty.pdf ===\n   \n"
    sources = reconstruct_sources(text, "t")
    assert len(sources) == 1
    assert sources[0].label == LEGACY_LABEL


def test_reconstruction_is_stable_across_reads():
    first  = reconstruct_sources(TWO_BLOCKS, "t")
    second = reconstruct_sources(TWO_BLOCKS, "t")

    assert [(s.id, s.label, s.text, s.kind) for s in first] == [
        (s.id, s.label, s.text, s.kind) for s in second
    ]
    assert len({s.id for s in first}) == 2


def test_different_manual_text_gets_different_ids():
    changed = reconstruct_sources(TWO_BLOCKS + " Please.", "t")
    assert {s.id for s in changed}.isdisjoint({s.id for s in reconstruct_sources(TWO_BLOCKS, "t")})


def test_reconstructing_flattened_sources_recovers_them():
    original = [
        ManualSource(kind=SourceKind.FILE, label="a.txt", text="  alpha body \n"),
        ManualSource(kind=SourceKind.FILE, label="b.xlsx", text="beta,1\ngamma,2"),
        ManualSource(kind=SourceKind.INSTRUCTION, label="User prompt", text="be brief"),
    ]
    rebuilt = reconstruct_sources(flatten_sources(original), "t")

    assert [(s.label, s.text, s.kind) for s in rebuilt] == [
        ("a.txt", "alpha body", SourceKind.FILE),
        ("b.xlsx", "beta,1\ngamma,2", SourceKind.FILE),
        ("User prompt", "be brief", SourceKind.INSTRUCTION),
    ]


def test_header_classification_is_case_insensitive():
    assert classify_header("SYSTEM PROMPT") == SourceKind.INSTRUCTION
    assert classify_header("Operator Instructions") == SourceKind.INSTRUCTION
    assert classify_header("사용자 프롬프트") == SourceKind.INSTRUCTION
    assert classify_header("handbook.pdf") == SourceKind.FILE
