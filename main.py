from utils.config import ConfigError, load_config, resolve_server, validate_config, DEFAULT_CONFIG_PATH
import argparse
import logging
import asyncio
import sys
from core.dserver import run_server
from utils.ListLoader import BlacklistSourceError, load_blacklist


def build_parser():
    parser = argparse.ArgumentParser(prog="sentineld", description="sentineld filtering DNS proxy")
    parser.add_argument("-s", "--server", help="upstream DNS server ip or name")
    parser.add_argument("-f", "--filter", action="append", dest="filters",
                        help="file (or http(s) URL) with domains to filter; may be repeated")
    parser.add_argument("-p", "--port", type=int, help="local bind port, default 53")
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG_PATH, help="path to INI config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    return parser


def merge_args(config, args):
    if args.server:
        config['upstream_dns'] = args.server
    if args.filters:
        config['blacklist_sources'] = args.filters
    if args.port is not None:
        config['listen_port'] = args.port
    config['verbose'] = args.verbose or config.get('verbose', False)
    return config


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = merge_args(load_config(args.config), args)
    except ConfigError as e:
        logging.basicConfig(format='[%(levelname)s] %(message)s')
        logging.error(str(e))
        return 1
    verbose = config['verbose']

    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                        format='[%(levelname)s] %(message)s')
    logging.debug("Configuration loaded:")
    for key, value in config.items():
        logging.debug(f"{key}: {value}")

    try:
        validate_config(config)
        upstream_ip = resolve_server(config['upstream_dns'])
        logging.info(f"Server ip selection: {upstream_ip}")
        blacklist = load_blacklist(config['blacklist_sources'], timeout=config['blacklist_fetch_timeout'])
    except (ConfigError, BlacklistSourceError) as e:
        logging.error(str(e))
        return 1
    if len(blacklist) == 0:
        logging.warning("Blacklist is empty, every query will be forwarded")

    try:
        asyncio.run(run_server(
            config['listen_ip'],
            config['listen_port'],
            upstream_ip,
            blacklist,
            upstream_port=config['upstream_port'],
            buffer_size=config['buffer_size'],
            max_name_length=config['max_name_length'],
            correlation_slots=config['correlation_slots'],
            dns_logging_enabled=config['dns_logging_enabled'],
            dns_log_dir=config['dns_log_dir'],
            dns_log_retention_days=config['dns_log_retention_days'],
            metrics_enabled=config['metrics_enabled'],
            metrics_port=config['metrics_port'],
        ))
    except PermissionError:
        logging.error(f"Permission denied: you must run as root to bind to port {config['listen_port']}.")
        return 1
    except OSError as e:
        logging.error(f"Could not bind a listen socket: {e}")
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
