"""
Main CLI entry point for plasmaeq.
"""

import argparse
import sys

from plasmaeq.core.logging_config import setup_logging, get_logger
from plasmaeq.parallel.comm import get_communicator

logger = get_logger("cli.main")


def backends_cmd(args):
    """List dense solver backends and whether each can run here."""
    from plasmaeq.core.factory import MatrixBackendFactory
    from plasmaeq.matrix.gpu import jax_available

    for name in MatrixBackendFactory.list_backends():
        if name == "gpu":
            status = "available" if jax_available(args.platform) else "unavailable"
            print(f"{name:6s} JAX on platform '{args.platform}': {status}")
        else:
            print(f"{name:6s} scipy LU: available")


def check_matrix_cmd(args):
    """Solve and invert a random well-conditioned system and check the answers."""
    import numpy as np
    from plasmaeq.core.factory import MatrixBackendFactory
    from plasmaeq.matrix.base import error_string

    kwargs = {"platform": args.platform} if args.backend == "gpu" else {}
    backend = MatrixBackendFactory.create(args.backend, **kwargs)

    result = backend.init()
    if not result.ok:
        print(f"ERROR: {args.backend} backend: {error_string(result.status)}")
        sys.exit(1)

    try:
        rng = np.random.default_rng(args.seed)
        n = args.size
        a = rng.normal(size=(n, n)) + n * np.eye(n)
        x_true = rng.normal(size=n)
        b = a @ x_true

        solved = backend.solve(a, b, n)
        if not solved.ok:
            print(f"ERROR: solve failed: {error_string(solved.status)}")
            sys.exit(1)
        solve_err = float(np.max(np.abs(solved.value - x_true)))

        inverted = backend.invert(a, n)
        if not inverted.ok:
            print(f"ERROR: invert failed: {error_string(inverted.status)}")
            sys.exit(1)
        invert_err = float(np.max(np.abs(inverted.value @ a - np.eye(n))))
    finally:
        backend.finish()

    print(f"Backend:        {args.backend}")
    print(f"System size:    {n}")
    print(f"Solve error:    {solve_err:.3e}")
    print(f"Inverse error:  {invert_err:.3e}")

    if solve_err > args.tolerance or invert_err > args.tolerance:
        print(f"ERROR: errors exceed tolerance {args.tolerance:.1e}")
        sys.exit(1)


def show_config_cmd(args):
    """Load, validate and print an update configuration."""
    from plasmaeq.core.config import UpdateConfig

    config = UpdateConfig.from_file(args.config)
    print(f"Configuration {args.config} is valid")
    for key, value in config.to_dict()["update"].items():
        print(f"  {key:28s} {value}")


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="plasmaeq: distributed statistical-equilibrium updates for plasma cells",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--version", action="version", version="%(prog)s 0.1.0")

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Backend listing command
    backends_parser = subparsers.add_parser("backends", help="List dense solver backends")
    backends_parser.add_argument(
        "--platform", type=str, default="gpu", help="JAX platform to probe (default: gpu)"
    )
    backends_parser.set_defaults(func=backends_cmd)

    # Matrix self-check command
    check_parser = subparsers.add_parser(
        "check-matrix", help="Run a solve/invert self-check on a solver backend"
    )
    check_parser.add_argument(
        "--backend", choices=["cpu", "gpu"], default="cpu", help="Backend to check (default: cpu)"
    )
    check_parser.add_argument(
        "--platform", type=str, default="gpu", help="JAX platform for the gpu backend"
    )
    check_parser.add_argument("--size", type=int, default=50, help="System size (default: 50)")
    check_parser.add_argument("--seed", type=int, default=None, help="Random seed")
    check_parser.add_argument(
        "--tolerance", type=float, default=1e-6, help="Maximum absolute error (default: 1e-6)"
    )
    check_parser.set_defaults(func=check_matrix_cmd)

    # Configuration check command
    config_parser = subparsers.add_parser(
        "show-config", help="Validate and print an update configuration file"
    )
    config_parser.add_argument(
        "config", type=str, help="Path to configuration file (YAML or JSON)"
    )
    config_parser.set_defaults(func=show_config_cmd)

    args = parser.parse_args(argv)

    # Setup logging
    setup_logging(level=args.log_level, rank=get_communicator().rank)

    # Execute command
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except SystemExit:
        raise
    except Exception as e:
        logger.error(f"Error executing command: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
