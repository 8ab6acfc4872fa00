import argparse
import asyncio
import sys
from pathlib import Path

from enigma.enigma_runtime import ScriptRunner
from enigma.enigma_printer import Printer
from enigma.enigma_serialize import serialize, render_trace

STDERR_TOPICS = (['error'], ['stderr'])


# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)


def print_effects(side_effects):
    for effect in side_effects:
        topics = effect.get('topics')
        if topics == ['stderr']:
            continue
        stream = sys.stderr if topics in STDERR_TOPICS else sys.stdout
        print(effect.get('message', ''), file=stream)


async def dump_steps(runner: ScriptRunner, source: str, fmt: str = 'text', max_iterations=None) -> int:
    """Records the trace of ``source`` and prints it; returns a process exit code."""
    result = await runner.prepare(source, max_iterations=max_iterations)
    if result.status == 'parse_error':
        print(result.format_error(), file=sys.stderr)
        return 1
    if fmt == 'text':
        print(render_trace(result.navigator.records), end="")
    else:
        print(serialize(result.trace, fmt))
    if result.status == 'halted':
        print(result.format_error(), file=sys.stderr)
        return 1
    return 0


async def run_script_file(file_path: str, steps: bool = False, fmt: str = 'text', max_iterations=None):
    """Run an Enigma script file non-interactively and exit with appropriate status."""
    runner = ScriptRunner(max_iterations=max_iterations)
    printer = Printer()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)

    if steps:
        code = await dump_steps(runner, source, fmt, max_iterations)
        if code:
            raise SystemExit(code)
        return

    result = await runner.handle_script(source)
    print_effects(result.side_effects)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)
    if result.value is not None:
        print(printer.pformat(result.value))


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="enigma", description="Run Enigma scripts or start a REPL.")
    parser.add_argument("file", nargs="?", help="script to run; starts the REPL when omitted")
    parser.add_argument("--steps", action="store_true", help="print the recorded execution trace")
    parser.add_argument("--format", default="text", choices=("text", "json", "yaml"), help="trace output format")
    parser.add_argument("--max-iterations", type=int, default=None, help="per-loop iteration ceiling")
    return parser


async def main(argv=None):
    """Run a script file when provided, otherwise start the interactive REPL."""
    args = build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)
    if args.file:
        await run_script_file(args.file, args.steps, args.format, args.max_iterations)
        return

    print("Enigma REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit. Prefix a line with ':steps ' to trace it.")

    runner = ScriptRunner(max_iterations=args.max_iterations)
    printer = Printer()

    while True:
        try:
            raw = await ainput(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break
            if line.startswith(":steps "):
                await dump_steps(runner, line[len(":steps "):], args.format, args.max_iterations)
                continue

            result = await runner.handle_script(line)
            print_effects(result.side_effects)

            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                continue

            if result.value is not None:
                print(printer.pformat(result.value))

        except EOFError:
            print("\nExiting.")
            break


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")
