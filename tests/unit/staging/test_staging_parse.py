"""Tests for the pure parsing helpers of the staging snapshot."""

from stagegate.staging import (
    ChangeKind,
    ChangeSummary,
    StagedFile,
    is_binary_content,
    parse_added_lines,
    parse_name_status,
    parse_numstat,
)


def test_parse_name_status_keeps_rename_destination():
    raw = b"M\x00src/a.c\x00A\x00b.h\x00R087\x00old.c\x00new.c\x00D\x00gone.c\x00"

    entries = parse_name_status(raw)

    assert entries == [
        (ChangeKind.MODIFIED, "src/a.c"),
        (ChangeKind.ADDED, "b.h"),
        (ChangeKind.RENAMED, "new.c"),
    ]


def test_parse_numstat_handles_binary_and_renames():
    raw = b"3\t1\tsrc/a.c\x00-\t-\tlogo.png\x002\t0\t\x00old.c\x00new.c\x00"

    stats = parse_numstat(raw)

    assert stats == {"src/a.c": (3, 1), "logo.png": (None, None), "new.c": (2, 0)}


def test_parse_added_lines_tracks_hunk_line_numbers():
    diff = "\n".join(
        [
            "diff --git a/a.c b/a.c",
            "index 111..222 100644",
            "--- a/a.c",
            "+++ b/a.c",
            "@@ -3,0 +4,2 @@ int main(void)",
            "+int x;",
            "+int y;",
            "@@ -10 +12 @@",
            "-old",
            "+new",
            "diff --git a/b.c b/b.c",
            "new file mode 100644",
            "--- /dev/null",
            "+++ b/b.c",
            "@@ -0,0 +1 @@",
            "+++ not a header",
        ]
    )

    added = parse_added_lines(diff)

    assert [(a.line_no, a.text) for a in added["a.c"]] == [(4, "int x;"), (5, "int y;"), (12, "new")]
    assert [(a.line_no, a.text) for a in added["b.c"]] == [(1, "++ not a header")]


def test_binary_detection_sniffs_content():
    assert not is_binary_content(b"")
    assert not is_binary_content(b"int main(void) { return 0; }\n")
    assert not is_binary_content("café ☃\n".encode())
    assert is_binary_content(b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR")
    assert is_binary_content(bytes([0x01, 0x02, 0x03, 0xFF, 0xFE, 0x04, 0x05]))


def test_binary_detection_ignores_file_name():
    # A C file full of NULs is still binary; a .png of plain text is not.
    assert is_binary_content(b"int\x00main")
    assert not is_binary_content(b"just text in a .png")


def test_change_summary_totals_always_plural():
    summary = ChangeSummary.from_files(
        [StagedFile(path="b.c", change_kind=ChangeKind.ADDED, is_binary=False, extension=".c", insertions=1, deletions=0)]
    )

    assert summary.totals_line() == "1 files changed, 1 insertions(+), 0 deletions(-)"


def test_change_summary_counts_binary_as_zero_lines():
    summary = ChangeSummary(entries=(("a.c", 3, 2), ("logo.png", None, None)))

    assert summary.files_changed == 2
    assert summary.insertions == 3
    assert summary.deletions == 2
