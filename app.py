from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from savesvc.core.config.loader import load_service_config
from savesvc.core.errors import ConfigError
from savesvc.core.logger import setup_logging
from savesvc.core.ops_log import OpsLogger
from savesvc.core.service import SaveService
from savesvc.core.termination import TerminationHandler

USAGE = (
    "usage: {prog} [-f name] [-t varname] [-c config.json] [-v] [-h]\n"
    " [-f filename] : output file name\n"
    " [-t triggervar] : trigger variable name\n"
    " [-c config.json] : service config file\n"
    " [-h] : display this help\n"
    " [-v] : verbose output\n"
)


def build_parser(prog: str = "savesvc") -> argparse.ArgumentParser:
    # -h prints usage and keeps going, so argparse's own help is disabled
    ap = argparse.ArgumentParser(prog=prog, add_help=False, description="Variable save service")
    ap.add_argument("-f", dest="output_path", default=None, help="Output file name.")
    ap.add_argument("-t", dest="trigger_var", default=None, help="Trigger variable name.")
    ap.add_argument("-c", dest="config", default=None, help="JSON service config file.")
    ap.add_argument("-v", dest="verbose", action="store_true", default=None, help="Verbose output.")
    ap.add_argument("-h", dest="help", action="store_true", help="Display usage.")
    return ap


def usage(prog: str) -> None:
    sys.stderr.write(USAGE.format(prog=prog))


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    prog = "savesvc"
    # unknown options are ignored
    args, _unknown = build_parser(prog).parse_known_args(argv)
    if args.help:
        usage(prog)

    try:
        cfg = load_service_config(args.config, {"output_path": args.output_path, "trigger_var": args.trigger_var, "verbose": args.verbose})
    except ConfigError as e:
        sys.stderr.write(f"{e.user_message}\n")
        return 0

    logger = setup_logging(cfg.log_dir, verbose=cfg.verbose)
    ops = OpsLogger(path=cfg.ops_log_path) if cfg.ops_log_path else None

    service = SaveService(cfg, logger=logger, ops=ops)
    handler = TerminationHandler(service)
    handler.install()
    try:
        if service.start():
            service.run()
    finally:
        service.close()
        handler.uninstall()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
