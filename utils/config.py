import os
import socket
import configparser


DEFAULT_CONFIG_PATH = 'config/sentineld.conf'


class ConfigError(Exception):
    pass


def default_config():
    return {
        'verbose': False,
        'listen_ip': '0.0.0.0',
        'listen_port': 53,
        'upstream_dns': None,
        'upstream_port': 53,
        'blacklist_sources': [],
        'blacklist_fetch_timeout': 30.0,
        'buffer_size': 1000,
        'max_name_length': 255,
        'correlation_slots': 32,
        'dns_logging_enabled': False,
        'dns_log_dir': '/var/log/sentineld',
        'dns_log_retention_days': 7,
        'metrics_enabled': False,
        'metrics_port': 8000,
    }


def _split_sources(raw):
    return [s.strip() for s in raw.split(',') if s.strip()]


def load_config(path=DEFAULT_CONFIG_PATH):
    """Read the INI file at ``path``. A missing file yields the defaults."""
    defaults = default_config()
    if not path or not os.path.exists(path):
        return defaults
    config = configparser.ConfigParser()
    try:
        config.read(path)
    except configparser.Error as e:
        raise ConfigError(f"Cannot parse {path}: {e}")
    try:
        return {
            'verbose': config.getboolean('logging', 'verbose', fallback=defaults['verbose']),
            'listen_ip': config.get('interface', 'listen_ip', fallback=defaults['listen_ip']),
            'listen_port': config.getint('interface', 'listen_port', fallback=defaults['listen_port']),
            'upstream_dns': config.get('upstream', 'dns_server', fallback=None) or None,
            'upstream_port': config.getint('upstream', 'port', fallback=defaults['upstream_port']),
            'blacklist_sources': _split_sources(config.get('blacklist', 'sources', fallback='')),
            'blacklist_fetch_timeout': config.getfloat('blacklist', 'fetch_timeout', fallback=defaults['blacklist_fetch_timeout']),
            'buffer_size': config.getint('advanced', 'buffer_size', fallback=defaults['buffer_size']),
            'max_name_length': config.getint('advanced', 'max_name_length', fallback=defaults['max_name_length']),
            'correlation_slots': config.getint('advanced', 'correlation_slots', fallback=defaults['correlation_slots']),
            'dns_logging_enabled': config.getboolean('logging', 'dns_logging_enabled', fallback=defaults['dns_logging_enabled']),
            'dns_log_dir': config.get('logging', 'dns_log_dir', fallback=defaults['dns_log_dir']),
            'dns_log_retention_days': config.getint('logging', 'dns_log_retention_days', fallback=defaults['dns_log_retention_days']),
            'metrics_enabled': config.getboolean('monitoring', 'metrics_enabled', fallback=defaults['metrics_enabled']),
            'metrics_port': config.getint('monitoring', 'metrics_port', fallback=defaults['metrics_port']),
        }
    except ValueError as e:
        raise ConfigError(f"Invalid value in {path}: {e}")


def _check_port(name, value):
    if not isinstance(value, int) or value < 0 or value > 65535:
        raise ConfigError(f"{name} has to be integer value from 0 to 65535, got {value!r}")


def validate_config(config):
    if not config.get('upstream_dns'):
        raise ConfigError("You have to input server name.")
    if not config.get('blacklist_sources'):
        raise ConfigError("You have to input name of filter table.")
    _check_port('listen_port', config.get('listen_port'))
    _check_port('upstream_port', config.get('upstream_port'))
    _check_port('metrics_port', config.get('metrics_port'))
    for key in ('buffer_size', 'max_name_length', 'dns_log_retention_days'):
        if config.get(key, 0) <= 0:
            raise ConfigError(f"{key} must be positive")
    if config.get('correlation_slots', 0) < 2:
        raise ConfigError("correlation_slots must be at least 2")
    if config.get('blacklist_fetch_timeout', 0) <= 0:
        raise ConfigError("blacklist_fetch_timeout must be positive")
    return config


def resolve_server(name):
    """Return the IPv4 address for ``name`` (an IPv4 literal or a hostname)."""
    try:
        socket.inet_pton(socket.AF_INET, name)
        return name
    except (OSError, TypeError):
        pass
    try:
        infos = socket.getaddrinfo(name, None, socket.AF_INET, socket.SOCK_DGRAM)
    except (socket.gaierror, UnicodeError) as e:
        raise ConfigError(f"Server name must be valid (or valid IPv4 address): {name} ({e})")
    if not infos:
        raise ConfigError(f"Server name must be valid (or valid IPv4 address): {name}")
    return infos[0][4][0]
