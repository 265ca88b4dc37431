"""CLI commands for the CPE simulator.

Example:
    $ cpelink run --acs-url http://127.0.0.1:7547/ --serial CPE-SIM-0001
    $ cpelink config-generate -o cpe-simulator.yaml
    $ cpelink show-model --prefix InternetGatewayDevice.ManagementServer.
"""

from cpelink.cli.simulator import cli, config_generate, main, run, show_model

__all__ = [
    "cli",
    "main",
    "run",
    "config_generate",
    "show_model",
]
