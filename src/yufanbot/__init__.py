"""Yufanbot - a bot host that compiles and loads third-party plugin packages.

Plugin authors ship source packages (``.yf`` archives). The host resolves their
declared libraries against package registries, builds them with an external
toolchain, and loads each one into its own isolated load context.

Key modules:

- :mod:`yufanbot.plugins` - Plugin compilation pipeline and host contract
- :mod:`yufanbot.config` - YAML configuration with pydantic validation
- :mod:`yufanbot.app` - Host application that loads and initializes plugins
- :mod:`yufanbot.cli` - Command-line interface
"""

__version__ = "0.1.0"
