from __future__ import annotations

import sys
from typing import List, Optional


def main(argv: Optional[List[str]] = None) -> None:
    args = sys.argv[1:] if argv is None else list(argv)

    if args and str(args[0]).lower() in {"plot-history", "plot_history", "plot"}:
        from hypersearch.plot_history import main as plot_main

        plot_main(args[1:])
        return

    # Everything else is a search: `hypersearch [options] lower upper [tol] command ...`
    from hypersearch.cli import main as search_main

    search_main(args)


if __name__ == "__main__":
    main()
