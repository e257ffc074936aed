"""Tests for muxlayout.template_tokens module."""

import pytest

from muxlayout.emitter import EmittedTerminal
from muxlayout.template_tokens import TemplateTokenError, build_name_to_pane_id_map, replace_template_tokens


class TestReplaceTemplateTokens:
    """Tests for replace_template_tokens function."""

    def test_pane_id_by_name(self) -> None:
        """Should replace a named pane reference."""
        assert replace_template_tokens("echo {{pane_id:editor}}", "%1", "%1", {"editor": "%3"}) == "echo %3"

    def test_unknown_name(self) -> None:
        """Should fail naming the missing pane."""
        with pytest.raises(TemplateTokenError) as exc_info:
            replace_template_tokens("echo {{pane_id:editor}}", "%1", "%1", {})
        assert "editor" in str(exc_info.value)
        assert exc_info.value.token_type == "pane_id"
        assert exc_info.value.available_panes == []

    def test_this_and_focus_pane(self) -> None:
        """Should replace this_pane and focus_pane."""
        result = replace_template_tokens("{{this_pane}} -> {{focus_pane}}", "%2", "%4", {})
        assert result == "%2 -> %4"

    def test_single_pass(self) -> None:
        """Should not expand tokens that appear in substituted text."""
        result = replace_template_tokens("{{pane_id:a}}", "%1", "%1", {"a": "{{this_pane}}"})
        assert result == "{{this_pane}}"

    def test_plain_text_untouched(self) -> None:
        """Should leave commands without tokens alone."""
        assert replace_template_tokens("ls -la {not_a_token}", "%1", "%1", {}) == "ls -la {not_a_token}"


class TestBuildNameToPaneIdMap:
    """Tests for build_name_to_pane_id_map function."""

    def test_last_duplicate_wins(self) -> None:
        """Should map duplicate names to the last pane in document order."""
        terminals = [
            EmittedTerminal(virtual_pane_id="root.0", name="shell", focus=True),
            EmittedTerminal(virtual_pane_id="root.1", name="shell", focus=False),
        ]
        mapping = build_name_to_pane_id_map(terminals, {"root.0": "%1", "root.1": "%2"}.get)
        assert mapping == {"shell": "%2"}

    def test_skips_unresolved(self) -> None:
        """Should leave out panes that cannot be resolved."""
        terminals = [EmittedTerminal(virtual_pane_id="root.0", name="a", focus=True)]
        assert build_name_to_pane_id_map(terminals, lambda _virtual_id: None) == {}
