"""Circomkit CLI: build, prove and verify circuits declared in circuits.json."""

import argparse
import asyncio
import logging
import sys
from importlib.metadata import version as get_version, PackageNotFoundError
from pathlib import Path
from typing import List, Optional


def _build_kit(args):
    from ._internal.io.config import DEFAULT_CONFIG_NAME, load_config
    from .api import Circomkit
    from .kernel.config import CircomkitConfig

    if args.config is not None:
        config_path = Path(args.config).resolve()
        config = load_config(config_path)
    else:
        config_path = Path.cwd() / DEFAULT_CONFIG_NAME
        config = load_config(config_path) if config_path.is_file() else CircomkitConfig()
    if args.verbose:
        config = config.with_verbose(True)
    kit = Circomkit(config, root=config_path.parent)
    kit.load_circuits()
    return kit


def _configure_logging(verbose: bool, quiet: bool) -> None:
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point for circomkit commands."""
    # Get version for --version argument (handle PackageNotFoundError)
    try:
        circomkit_version = get_version("circomkit")
    except PackageNotFoundError:
        circomkit_version = "dev"

    parser = argparse.ArgumentParser(
        prog="circomkit",
        description="Circomkit: cached build, witness and proof pipeline for Circom circuits"
    )
    parser.add_argument("--version", action="version", version=f"circomkit {circomkit_version}")
    # Common arguments
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to circomkit.json (defaults to ./circomkit.json)"
    )
    parent_parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log cache decisions and tool invocations."
    )
    parent_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all non-error output."
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def circuit_command(name: str, help: str, with_input: bool = False, with_ptau: bool = False):
        sub = subparsers.add_parser(name, help=help, parents=[parent_parser])
        sub.add_argument("circuit", help="Circuit name from circuits.json")
        if with_input:
            sub.add_argument("input", help="Input name (inputs/<circuit>/<input>.json)")
        if with_ptau:
            sub.add_argument(
                "--ptau",
                type=Path,
                default=None,
                help="PTAU file to use instead of the recommended download"
            )
        return sub

    circuit_command("compile", "Compile a circuit")
    circuit_command("witness", "Calculate a witness for an input", with_input=True)
    circuit_command("setup", "Generate proving and verification keys", with_ptau=True)
    circuit_command("prove", "Prove an input", with_input=True, with_ptau=True)
    circuit_command("verify", "Prove an input and verify the proof", with_input=True, with_ptau=True)
    circuit_command("info", "Show constraint and signal counts")
    circuit_command("ptau", "Download the recommended PTAU file for a circuit")
    circuit_command("contract", "Export a Solidity verifier", with_ptau=True)
    circuit_command("calldata", "Print Solidity calldata for a proof of an input", with_input=True, with_ptau=True)
    circuit_command("fingerprint", "Print the build fingerprint of a circuit")

    clean_parser = subparsers.add_parser(
        "clean",
        help="Remove build outputs (one circuit, or all)",
        parents=[parent_parser]
    )
    clean_parser.add_argument("circuit", nargs="?", default=None, help="Circuit name (default: all)")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    from .errors import CircomkitError

    try:
        kit = _build_kit(args)
        _configure_logging(kit.config.verbose, args.quiet)
        exit_code = asyncio.run(_dispatch(kit, args))
    except CircomkitError as e:
        print(f"Error [{e.code.value}]: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(130)
    sys.exit(exit_code)


async def _dispatch(kit, args) -> int:
    quiet = args.quiet
    command = args.command

    def report(*lines: str) -> None:
        if not quiet:
            for line in lines:
                print(line)

    if command == "clean":
        if args.circuit:
            kit.clean(args.circuit)
            report(f"[OK] Cleaned {args.circuit}")
        else:
            kit.clean_all()
            report("[OK] Cleaned all build outputs")
        return 0

    circuit = kit.get_circuit(args.circuit)
    ptau = getattr(args, "ptau", None)

    if command == "fingerprint":
        print(kit.fingerprint(circuit))
        return 0

    if command == "compile":
        artifacts = await kit.compile(circuit)
        report(
            f"[OK] Compiled {circuit.name}",
            f"  Build: {kit.build_path(circuit)}",
            f"  Fingerprint: {artifacts.fingerprint}",
        )
        return 0

    if command == "info":
        info = await kit.info(circuit)
        print(f"Circuit: {circuit.name}")
        print(f"  Prime: {info.prime.value}")
        print(f"  Constraints: {info.constraints}")
        print(f"  Wires: {info.wires}")
        print(f"  Public outputs: {info.public_outputs}")
        print(f"  Public inputs: {info.public_inputs}")
        print(f"  Private inputs: {info.private_inputs}")
        print(f"  Labels: {info.labels}")
        return 0

    if command == "ptau":
        path = await kit.ptau(circuit)
        report("[OK] PTAU ready", f"  File: {path}")
        return 0

    if command == "setup":
        await kit.setup(circuit, ptau)
        report(f"[OK] Keys ready for {circuit.name} ({kit.config.protocol.value})")
        return 0

    if command == "contract":
        path = await kit.export_verifier(circuit, ptau)
        report("[OK] Verifier exported", f"  Contract: {path}")
        return 0

    inputs = kit.read_inputs(circuit, args.input)

    if command == "witness":
        result = await kit.witness(circuit, inputs)
        report(f"[OK] Witness computed for {circuit.name}/{args.input}", f"  Witness: {result.path}")
        return 0

    pipeline = kit.pipeline(circuit, ptau)
    proof = await pipeline.prove(inputs)

    if command == "prove":
        report(f"[OK] Proof generated for {circuit.name}/{args.input}")
        for name, value in proof.public.items():
            report(f"  {name}: {value}")
        return 0

    if command == "verify":
        valid = await pipeline.verify(proof)
        if valid:
            report(f"[OK] Proof verified for {circuit.name}/{args.input}")
            return 0
        print(f"[FAILED] Proof rejected for {circuit.name}/{args.input}", file=sys.stderr)
        return 1

    if command == "calldata":
        print(await pipeline.calldata(proof))
        return 0

    raise ValueError(f"Unhandled command: {command}")


if __name__ == "__main__":
    main()
