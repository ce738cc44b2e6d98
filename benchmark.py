#!/usr/bin/env python3
"""Performance benchmarking script for PHP Reflector usage scans.

Times a usage scan with the vendor directory included twice against the
same cache file: the first run is cold (every vendor file is tokenized),
the second warm (vendor results come from the cache).

Usage:
    python benchmark.py PROJECT_ROOT TARGET [SCAN_PATH]
"""

import json
import os
import subprocess
import sys
import tempfile
import time
from pathlib import Path


def run_scan(project_path, target, scan_path, cache_path, flush=False):
    """Run one usage scan through the CLI and time it."""
    cmd = [
        sys.executable,
        "-m", "php_reflector.main",
        "usages", target,
        "--root", project_path,
        "--path", scan_path,
        "--include-vendor",
        "--limit", "0",
        "--json",
    ]
    if flush:
        cmd.append("--flush-cache")

    env = {**os.environ, "REFLECTOR_CACHE_PATH": str(cache_path)}
    start = time.time()
    result = subprocess.run(cmd, capture_output=True, text=True, env=env)
    elapsed = time.time() - start

    if result.returncode != 0:
        print(result.stdout)
        print(result.stderr, file=sys.stderr)

    return elapsed, result.stdout


def benchmark_project(project_path, target, scan_path="."):
    """Cold vs warm vendor cache timings for one project."""
    print(f"\n{'='*70}")
    print(f"Benchmarking: {target}")
    print(f"Path: {project_path}")
    print(f"{'='*70}\n")

    with tempfile.TemporaryDirectory() as tmp:
        cache_path = Path(tmp) / "usages.db"
        cold, output = run_scan(project_path, target, scan_path, cache_path, flush=True)
        warm, _ = run_scan(project_path, target, scan_path, cache_path)

    data = json.loads(output) if output.strip() else {}
    total_usages = data.get('total_usages', 0)
    files_scanned = data.get('scan_stats', {}).get('files_scanned', 0)

    return {
        'target': target,
        'path': project_path,
        'cold': cold,
        'warm': warm,
        'files': files_scanned,
        'usages': total_usages,
    }


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)

    r = benchmark_project(sys.argv[1], sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else ".")

    print("\n" + "="*80)
    print("VENDOR CACHE SUMMARY")
    print("="*80)
    print(f"{'Target':<30} {'Files':<8} {'Usages':<8} {'Cold (s)':<10} {'Warm (s)':<10} {'Speedup':<8}")
    print("-"*80)
    speedup = r['cold'] / r['warm'] if r['warm'] > 0 else 0
    print(f"{r['target']:<30} {r['files']:<8} {r['usages']:<8} {r['cold']:<10.2f} {r['warm']:<10.2f} {speedup:<8.1f}x")
    print("-"*80)
