#!/usr/bin/env python3
"""Servicio standalone del adaptador de eventos SAP."""

import argparse
import asyncio
import signal

from config import generate_default_config, load_config, setup_logging
from sap_adapter.adapter import SAPAdapter
from sap_adapter.sap_connector import SAPConnector


async def main():
    parser = argparse.ArgumentParser(description="SAP Event Adapter")
    parser.add_argument('--config', default='sap_adapter.yaml', help='Archivo de configuración')
    parser.add_argument('--generate-config', action='store_true',
                        help='Genera un archivo de configuración por defecto y termina')
    args = parser.parse_args()

    if args.generate_config:
        generate_default_config(args.config)
        return

    config = load_config(args.config)
    logger = setup_logging(config.logging)

    if not config.sap.enabled:
        logger.warning("Integración SAP deshabilitada en la configuración")
        return

    adapter = SAPAdapter(config, transport=SAPConnector(config.sap, logger), logger=logger)
    await adapter.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _signal_handler(signum, frame):
        logger.info("Señal recibida: %s", signum)
        loop.call_soon_threadsafe(stop_event.set)

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    await stop_event.wait()
    await adapter.stop()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
