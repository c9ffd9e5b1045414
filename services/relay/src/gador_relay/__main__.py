"""
Main entry point for the Gador Relay Service.

This allows the service to be run with:
    python -m gador_relay [--log-level DEBUG] [--config path/to/config] [--port 5000]
"""
from gador_common.cli import create_simple_main
from gador_relay.relay_service import run_relay_service
from gador_relay.config import DEFAULT_CONFIG_PATH, RelayServiceConfig


main = create_simple_main(
    service_name="Relay",
    description="WebSocket state authority and event relay for the stage and remote controls",
    service_runner=run_relay_service,
    default_config_path=str(DEFAULT_CONFIG_PATH),
    config_class=RelayServiceConfig
)


if __name__ == "__main__":
    main()
