#!/usr/bin/env python3
"""Entry point for the godeploy command line tool."""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .core.config_manager import ConfigManager
from .core.runner import Runner
from .models.service import ConfigError
from .utils.constants import APP_NAME, CONFIG_DIR, DEFAULT_CONFIG_FILE, LOG_FILE

COMMANDS = [
    ("install", "Install one or more services on the remote host."),
    ("uninstall", "Uninstall one or more services on the remote host."),
    ("start", "Start one or more services."),
    ("stop", "Stop one or more services."),
    ("restart", "Restart one or more services."),
    ("status", "Show runtime status of one or more services."),
    ("show-service", "Print systemd unit service file of one or more services."),
]

CONFIG_OPTIONS = [
    ("user", "User to log in with on the remote machine. (default current user)"),
    ("host", "Hostname to log in for executing commands on the remote host. (required)"),
    ("port", "Port to connect to on the remote host. (default 22)"),
    ("private_key_path", "Local path of the private key used to authenticate. (default '~/.ssh/id_rsa')"),
    ("go_exec_path", "Remote path of the Go executable. (default '/usr/local/go/bin/go')"),
    ("go_bin_directory", "Directory where 'go install' puts the executable. (default '~/go/bin/')"),
    ("go_install", "Go package to install, with version suffix, ex: @latest. (required)"),
    ("go_private", "GOPRIVATE value used by 'go install' to install from private sources."),
    ("netrc_machine", "Machine name added to the remote .netrc file for private sources."),
    ("netrc_login", "Login added to the remote .netrc file for private sources."),
    ("netrc_password", "Password or access token added to the remote .netrc file."),
    ("systemd_path", "Remote path of the systemd executable. (default 'systemd')"),
    ("systemd_services_directory", "Remote directory of user unit files. (default '~/.config/systemd/user/')"),
    ("systemd_linger_dir", "Remote directory of the lingering user list. (default '/var/lib/systemd/linger/')"),
    ("exec_start", "Command executed when the service is started. (default the installed executable)"),
    ("working_directory", "Remote working directory of the service. (default '~/')"),
    ("environment", "Space-separated list of environment variable assignments."),
    ("log_path", "Remote file receiving the standard output and error of the service."),
    ("run_after_service", "Start the service after the listed unit finished starting up."),
    ("start_limit_burst", "Number of starts allowed within 'start_limit_interval_sec'."),
    ("start_limit_interval_sec", "Checking interval used by 'start_limit_burst'."),
    ("restart_sec", "Seconds to sleep before restarting the service."),
    ("copy_files", "Local files or directories copied into the working directory."),
    ("ignore", "Skip the service when no service name is given. (default false)"),
]


def setup_logging(verbose: bool = False):
    """Set up application logging.

    Everything is written to the log file; only warnings reach the terminal
    unless verbose is set.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(LOG_FILE)
    file_handler.setLevel(logging.DEBUG)
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)

    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[file_handler, stream_handler]
    )
    logging.getLogger("paramiko").setLevel(logging.WARNING)


def build_epilog() -> str:
    lines = ["commands:"]
    lines += [f"  {name + ' SERVICE...':<30}{help_text}" for name, help_text in COMMANDS]
    lines += [
        "",
        "After each command you can specify one or more services. If you do not specify any,",
        "all services in the YAML configuration file will be selected.",
        "",
        "configuration YAML file options:",
    ]
    lines += [f"  {name:<30}{help_text}" for name, help_text in CONFIG_OPTIONS]
    lines += [
        "",
        "Every option can be overridden with an environment variable named after the",
        "service and the option, e.g. MY_SERVICE_HOST for option 'host' of service 'my-service'.",
    ]
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=f"{APP_NAME} - Deploy and manage Go services on remote hosts with systemd",
        epilog=build_epilog(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('-f', dest='config_file', default=DEFAULT_CONFIG_FILE,
                        help=f'Configuration YAML file path (default {DEFAULT_CONFIG_FILE})')
    parser.add_argument('-q', '--quiet', action='store_true',
                        help='Disable printing (errors are still printed)')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Print debug logs on the terminal')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND', required=True)
    for name, help_text in COMMANDS:
        subparser = subparsers.add_parser(name, help=help_text, description=help_text)
        subparser.add_argument('services', nargs='*', metavar='SERVICE',
                               help='Services to act on (default all services not ignored)')
        if name == "install":
            subparser.add_argument('-c', '--create-working-directory', action='store_true',
                                   help='Create the remote working directory if it does not exist')
        elif name == "uninstall":
            subparser.add_argument('-r', '--remove-working-directory', action='store_true',
                                   help='Also delete the log file and the remote working directory')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        0 once the command has run on every service (per-service failures are
        printed only), 1 if the configuration cannot be loaded
    """
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)
    logger.info(f"Running {args.command} {' '.join(args.services)}".rstrip())

    config_manager = ConfigManager(args.config_file)
    try:
        config_manager.load_config()
    except ConfigError as e:
        print(e, file=sys.stderr)
        return 1

    runner = Runner(config_manager, quiet=args.quiet)
    runner.run(
        args.command,
        args.services,
        create_working_directory=getattr(args, "create_working_directory", False),
        remove_working_directory=getattr(args, "remove_working_directory", False),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
