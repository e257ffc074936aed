"""muxlayout: declarative pane layouts for tmux and WezTerm."""

__version__ = "0.1.0"
