"""RevCore quickstart: load a PE and walk the analysis results."""

import sys
from pathlib import Path

from revcore.analysis.pipeline import analyze_file
from revcore.analysis.symbols import count_by_type
from revcore.analysis.xrefs import build_reverse_index
from revcore.config.loader import load_config
from revcore.utils.logging import setup_logging


def main():
    # 1. Load configuration
    config = load_config()
    setup_logging(config.logging.level, config.logging.json_output)

    # 2. Run every stage over one binary
    path = Path(sys.argv[1] if len(sys.argv) > 1 else "C:/Windows/System32/notepad.exe")
    result = analyze_file(path, config)
    print(f"{path.name}: {len(result.functions)} functions, "
          f"{result.completed_stages}/{result.total_stages} stages")

    # 3. Functions with their block counts
    for function in result.functions[:20]:
        blocks = function.cfg.total_blocks if function.cfg else 0
        print(f"  {function.address:#x} {function.name or '-':<24} {function.source.value:<12} {blocks} blocks")

    # 4. Symbol counts and the most-referenced functions
    print("  symbols: " + ", ".join(f"{k}={v}" for k, v in count_by_type(result.symbols).items()))
    callers = build_reverse_index(result.xrefs)
    names = {f.address: f.name or f"sub_{f.address:X}" for f in result.functions}
    ranked = sorted(names, key=lambda a: len(callers.get(a, [])), reverse=True)
    for address in ranked[:10]:
        print(f"  {names[address]}: {len(callers.get(address, []))} references")

    for stage, error in result.errors.items():
        print(f"  stage {stage} failed: {error}")


if __name__ == "__main__":
    main()
