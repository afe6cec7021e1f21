import argparse
import json
import os
import sys
from datetime import datetime

import numpy as np
import torch

from alias_sampler import (
    AliasTable,
    AliasInvariantError,
    InvalidWeightsError,
    )

if torch.backends.mps.is_available():
    device = torch.device('mps')
elif torch.cuda.is_available():
    device = torch.device('cuda')
else:
    device = torch.device('cpu')

INT64_MAX = torch.iinfo(torch.int64).max


def get_logger(log_file_path, print_to_console=True):
    """
    Returns a logger that writes JSON-formatted logs to file (1 per line).

    Args:
        log_file_path (str): File to append logs to.
        print_to_console (bool): If True, also prints log entries to stdout.

    Returns:
        log_fn (callable): log_fn(message_dict: dict)
    """
    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    def log_fn(message_dict):
        message_dict["timestamp"] = datetime.now().isoformat()
        line = json.dumps(message_dict)
        with open(log_file_path, "a") as f:
            f.write(line + "\n")
        if print_to_console:
            print(line)

    return log_fn


def triangular_weights(count=32, step=1000):
    """Weights 0, step, 2*step, ... for `count` outcomes."""
    return [i * step for i in range(count)]


def sample_counts(
    table,
    num_samples=1_000_000,
    batch_size=100_000,
    seed=None,
    device=device,
    ):
    """
    Draws uniform (x, y) pairs with torch, resolves them through the
    alias table and tabulates how often each outcome comes up.

    Input:
    ------
    table: The AliasTable to sample from.
    num_samples: Total number of draws.
    batch_size: Number of draws resolved per tensor operation.
    seed: Seed for the torch generator. None seeds it nondeterministically.
    device: Device the tensors live on.

    Returns:
    --------
    numpy array of length len(table) with the count of every outcome.
    """
    if num_samples < 0:
        raise ValueError(f"num_samples must be >= 0, got {num_samples}")
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    n, total = len(table), table.total
    if total * n > INT64_MAX:
        raise ValueError(
            f"table with n={n} and total={total} does not fit int64 tensors"
            )

    thresholds = torch.tensor(
        [int(u) for u in table.thresholds],
        dtype=torch.long,
        device=device
        )
    aliases = torch.tensor(
        [-1 if k is None else k for k in table.aliases],
        dtype=torch.long,
        device=device
        )
    generator = torch.Generator(device=device)
    if seed is None:
        generator.seed()
    else:
        generator.manual_seed(seed)

    counts = torch.zeros(n, dtype=torch.long, device=device)
    remaining = num_samples
    while remaining > 0:
        size = min(batch_size, remaining)
        x = torch.randint(0, n, (size,), generator=generator, device=device)
        y = torch.randint(
            0, total, (size,), generator=generator, device=device
            )
        idx = torch.where(y < thresholds[x], x, aliases[x])
        if bool((idx < 0).any()):
            raise AliasInvariantError(
                "lookup resolved to a slot with no alias"
                )
        counts += torch.bincount(idx, minlength=n)
        remaining -= size

    return counts.cpu().numpy()


def format_report(table, counts):
    weights = table.weights()
    num_samples = int(np.sum(counts))
    lines = ["Probabilities:"]
    lines += [f"  {i}: {w}" for i, w in enumerate(weights)]
    lines.append(f"Total: {table.total}")
    lines.append("")
    lines.append(f"Sampling results ({num_samples} samples):")
    for i, c in enumerate(counts):
        c = int(c)
        if c == 0:
            continue
        lines.append(f"  {i}: {c} - {100 * c / num_samples:.2f} %")
    return lines


def _parse_weights(text):
    try:
        return [int(w) for w in text.split(",") if w.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"weights must be comma-separated integers, got {text!r}"
            )


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Sample a weighted discrete distribution through an "
                    "alias table and print the resulting histogram."
        )
    parser.add_argument("--weights", type=_parse_weights, default=None,
                        help="Comma-separated non-decreasing integer weights "
                             "(default: 0,1000,...,31000)")
    parser.add_argument("--num-samples", type=int, default=1_000_000)
    parser.add_argument("--batch-size", type=int, default=100_000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--log-file", default=None)
    parser.add_argument("--quiet", action="store_true",
                        help="Do not echo the JSON log record to stdout")
    args = parser.parse_args(argv)

    weights = args.weights if args.weights is not None \
        else triangular_weights()
    try:
        table = AliasTable(weights)
    except InvalidWeightsError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    counts = sample_counts(
        table,
        num_samples=args.num_samples,
        batch_size=args.batch_size,
        seed=args.seed,
        device=device,
        )
    for line in format_report(table, counts):
        print(line)

    cur_time = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = args.log_file or f"logs/sample_log_{cur_time}.json"
    logger = get_logger(log_file, print_to_console=not args.quiet)
    logger({
        "n": len(table),
        "total": table.total,
        "num_samples": args.num_samples,
        "seed": args.seed,
        "device": str(device),
        "counts": [int(c) for c in counts],
    })
    return 0


if __name__ == "__main__":
    sys.exit(main())
