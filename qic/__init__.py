"""QIC - byte-budget image optimizer and safe URL rewriter for blog articles."""

__version__ = "0.1.0"
