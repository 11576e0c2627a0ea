import unittest
from datetime import datetime, timezone

from nano_build.minimizer import (
    BANNER,
    FileKind,
    HeaderMetadata,
    ParseError,
    collapse_blank_lines,
    filter_line,
    hosts_line,
    minimize,
    minimize_document,
    minimize_lines,
    minimize_meta,
    parse_header,
    psl_line,
    render_header,
    resource_line,
    split_lines,
)


def _meta(**kwargs):
    values = dict(license="GPL-3.0", source_url="https://example.com/src.txt", expires_days=1)
    values.update(kwargs)
    return HeaderMetadata(**values)


def _body(text, kind):
    """Compiled document without its header lines."""
    lines = text.split("\n")
    header_len = len(render_header(kind, _meta()))
    return lines[header_len:]


class TestSplitLines(unittest.TestCase):
    def test_mixed_newlines(self):
        self.assertEqual(split_lines("a\r\nb\nc\rd"), ["a", "b", "c", "d"])

    def test_crlf_is_one_break(self):
        self.assertEqual(split_lines("a\r\n\r\nb"), ["a", "", "b"])


class TestFilterLine(unittest.TestCase):
    def test_comment_dropped(self):
        self.assertEqual(filter_line("! Bad line").lines, ())
        self.assertEqual(filter_line("! Bad line").reason, "comment")

    def test_preprocessor_directive_kept(self):
        self.assertEqual(filter_line("!#include foo.txt").lines, ("!#include foo.txt",))
        self.assertEqual(filter_line("  !#if env_firefox  ").lines, ("!#if env_firefox",))

    def test_header_dropped(self):
        self.assertEqual(filter_line("[Adblock Plus 3.0]").reason, "header")

    def test_hash_comments(self):
        self.assertEqual(filter_line("#").lines, ())
        self.assertEqual(filter_line("# note").lines, ())
        # Cosmetic rules start with ## and must survive
        self.assertEqual(filter_line("##.ad-banner").lines, ("##.ad-banner",))
        self.assertEqual(filter_line("#@#.ad").lines, ("#@#.ad",))

    def test_blank_dropped(self):
        self.assertEqual(filter_line("   \t").reason, "empty")

    def test_rule_trimmed(self):
        self.assertEqual(filter_line("  ||ads.example.com^  ").lines, ("||ads.example.com^",))


class TestHostsLine(unittest.TestCase):
    def test_block_syntax(self):
        self.assertEqual(hosts_line("0.0.0.0 example.com").lines, ("||example.com^",))

    def test_bare_tokens(self):
        self.assertEqual(
            hosts_line("0.0.0.0 a.com b.com", block_syntax=False).lines,
            ("a.com", "b.com"),
        )

    def test_trailing_comment(self):
        self.assertEqual(hosts_line("127.0.0.1 ads.com # tracker").lines, ("||ads.com^",))

    def test_comment_line(self):
        self.assertEqual(hosts_line("# Title: hosts").reason, "comment")

    def test_local_aliases(self):
        for token in ("0.0.0.0", "broadcasthost", "localhost", "local", "0", "::",
                      "::1", "fe80::1%lo0", "ip6-localhost", "ip6-allrouters"):
            with self.subTest(token=token):
                self.assertEqual(hosts_line(f"::1 {token}").lines, ())

    def test_alias_lookalike_kept(self):
        self.assertEqual(hosts_line("0.0.0.0 localhost.example.com").lines, ("||localhost.example.com^",))


class TestResourceLine(unittest.TestCase):
    def test_hash_dropped(self):
        self.assertEqual(resource_line("# comment").lines, ())
        self.assertEqual(resource_line("#comment").lines, ())

    def test_leading_whitespace_kept(self):
        self.assertEqual(resource_line("    (function() {   ").lines, ("    (function() {",))

    def test_indented_hash_kept(self):
        self.assertEqual(resource_line("  # inside").lines, ("  # inside",))


class TestPslLine(unittest.TestCase):
    def test_inline_comment(self):
        self.assertEqual(psl_line("example.com // comment").lines, ("example.com",))

    def test_comment_only(self):
        self.assertEqual(psl_line("// ===BEGIN ICANN DOMAINS===").lines, ())

    def test_wildcard_and_exception(self):
        self.assertEqual(psl_line("*.ck").lines, ("*.ck",))
        self.assertEqual(psl_line("!www.ck").lines, ("!www.ck",))


class TestCollapseBlankLines(unittest.TestCase):
    def test_runs_collapsed(self):
        self.assertEqual(collapse_blank_lines(["a", "", "  ", "", "b"]), ["a", "", "b"])

    def test_trailing_blanks_removed(self):
        self.assertEqual(collapse_blank_lines(["a", "", ""]), ["a"])

    def test_empty(self):
        self.assertEqual(collapse_blank_lines(["", ""]), [])


class TestHeader(unittest.TestCase):
    def test_filter_header(self):
        meta = _meta(title="Nano filters", generated_at=datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc))
        self.assertEqual(render_header(FileKind.FILTER, meta), [
            "[Nano Adblocker]",
            "! Title: Nano filters",
            "! Expires: 1 days",
            "! Cached: 2024-01-31T12:00:00Z",
            "! License: GPL-3.0",
            "! Source: https://example.com/src.txt",
            "! This file is a compiled binary, do not modify",
            "! All modifications will be overwritten on the next build",
        ])

    def test_resource_header_deterministic(self):
        meta = _meta(expires_days=3)
        self.assertEqual(render_header(FileKind.RESOURCE, meta), [
            "# Expires: 3 days",
            "# License: GPL-3.0",
            "# Source: https://example.com/src.txt",
            "# This file is a compiled binary, do not modify",
            "# All modifications will be overwritten on the next build",
        ])

    def test_psl_header_fixed_expiry(self):
        lines = render_header(FileKind.PSL, _meta(expires_days=1, title="ignored"))
        self.assertEqual(lines[0], "// Expires: 7 days")
        self.assertNotIn(BANNER, lines)
        self.assertFalse(any("do not modify" in line for line in lines))

    def test_round_trip(self):
        for kind in ("filter", "hosts", "resource", "psl"):
            with self.subTest(kind=kind):
                meta = _meta(license="MPL-2.0", source_url="https://publicsuffix.org/x", expires_days=7)
                text = minimize("a.com\n", kind, meta)
                fields = parse_header(text)
                self.assertEqual(fields["license"], "MPL-2.0")
                self.assertEqual(fields["source"], "https://publicsuffix.org/x")
                self.assertEqual(fields["expires"], 7)

    def test_parse_header_stops_at_body(self):
        text = "# Expires: 3 days\n# License: L\nfoo\n# Source: late\n"
        self.assertNotIn("source", parse_header(text))


class TestMinimizeDocument(unittest.TestCase):
    def test_trailing_newline(self):
        for kind in ("filter", "hosts", "resource", "psl"):
            with self.subTest(kind=kind):
                text = minimize("a.com\n\n\n", kind, _meta())
                self.assertTrue(text.endswith("a.com^\n" if kind == "hosts" else "a.com\n"))
                self.assertFalse(text.endswith("\n\n"))

    def test_filter_properties(self):
        raw = "[Adblock Plus 2.0]\r\n! Title: x\r\n\r\n||a.com^\r\n!#if env_chromium\r\n  ##.ad  \r\n# \r\n!#endif\r\n"
        body = _body(minimize(raw, "filter", _meta()), FileKind.FILTER)
        self.assertEqual(body, ["||a.com^", "!#if env_chromium", "##.ad", "!#endif", ""])
        for line in body[:-1]:
            self.assertTrue(line)
            self.assertTrue(not line.startswith("!") or line.startswith("!#"))

    def test_hosts_properties(self):
        raw = "# hosts\n127.0.0.1 localhost\n::1 ip6-localhost ip6-loopback\n0.0.0.0 ads.com\n0.0.0.0 t.com x.com # y\n"
        body = _body(minimize(raw, "hosts", _meta()), FileKind.HOSTS)
        self.assertEqual(body, ["||ads.com^", "||t.com^", "||x.com^", ""])

        bare = _body(minimize(raw, "hosts", _meta(), block_syntax=False), FileKind.HOSTS)
        self.assertEqual(bare, ["ads.com", "t.com", "x.com", ""])

    def test_resource_properties(self):
        raw = "# uBO resources\n\nnoopjs application/javascript\n(function() {\n\n\n    'use strict';\n# note\n})();\n\n\n"
        body = _body(minimize(raw, "resource", _meta()), FileKind.RESOURCE)
        self.assertEqual(body, [
            "",
            "noopjs application/javascript",
            "(function() {",
            "",
            "    'use strict';",
            "})();",
            "",
        ])
        for first, second in zip(body, body[1:-1]):
            self.assertFalse(first == "" and second == "")

    def test_psl(self):
        raw = "// comment\n\ncom\nexample.com // comment\n"
        self.assertEqual(_body(minimize(raw, "psl", _meta()), FileKind.PSL), ["com", "example.com", ""])

    def test_idempotent(self):
        samples = {
            "filter": "! c\n[Adblock]\n||a.com^\n\n!#include x.txt\n##.ad\n",
            "resource": "# c\n\n\nabc text/plain\n  x\n\n\ny\n\n",
            "psl": "// c\nco.uk\n\n// x\nexample.com // y\n",
        }
        for kind, raw in samples.items():
            with self.subTest(kind=kind):
                once = minimize(raw, kind, _meta())
                twice = minimize(once, kind, _meta())
                self.assertEqual(once, twice)

    def test_timestamp_omitted_is_stable(self):
        a = minimize("||a.com^", "filter", _meta())
        b = minimize("||a.com^", "filter", _meta())
        self.assertEqual(a, b)
        self.assertNotIn("Cached", a)

    def test_stats(self):
        body, stats = minimize_lines(["! c", "", "||a.com^", "[x]"], FileKind.FILTER)
        self.assertEqual(body, ["||a.com^"])
        self.assertEqual(stats.lines_in, 4)
        self.assertEqual(stats.lines_out, 1)
        self.assertEqual(stats.dropped, {"comment": 1, "empty": 1, "header": 1})

    def test_document_returns_stats(self):
        text, stats = minimize_document("a\n\n\nb\n", "resource", _meta())
        self.assertEqual(stats.dropped.get("blank"), 2)
        self.assertTrue(text.endswith("a\n\nb\n"))

    def test_meta_requires_metadata_only_for_text_kinds(self):
        with self.assertRaises(ValueError):
            minimize("x", "filter")

    def test_byte_order_mark_dropped(self):
        raw = "\ufeff[Adblock Plus 3.0]\n! Title: x\n||a.com^\n"
        body = _body(minimize(raw, "filter", _meta()), FileKind.FILTER)
        self.assertEqual(body, ["||a.com^", ""])

    def test_split_lines_drops_byte_order_mark(self):
        self.assertEqual(split_lines("\ufeff# c\r\nx"), ["# c", "x"])


class TestMinimizeMeta(unittest.TestCase):
    def test_compact(self):
        self.assertEqual(minimize_meta('{\n  "a": [1, 2],\n  "b": "é"\n}\n'), '{"a":[1,2],"b":"é"}')

    def test_via_minimize(self):
        self.assertEqual(minimize("[ 1 ]", FileKind.META), "[1]")

    def test_malformed(self):
        with self.assertRaises(ParseError):
            minimize_meta('{"a": }')
        self.assertTrue(issubclass(ParseError, ValueError))


if __name__ == "__main__":
    unittest.main()
