"""gridrunner - run one or more grid engines from a YAML configuration."""

__version__ = "0.1.0"
