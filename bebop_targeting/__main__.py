"""Entry point wrapper for ``python -m bebop_targeting``.

Forwards to :func:`bebop_targeting.main` so ``python -m bebop_targeting`` and
the installed ``bebop-targeting`` console script behave identically::

    python -m bebop_targeting --progression "| Dm9  G13 | C∆ |" --seed 7 \
        --output line.mid
"""

from . import main

if __name__ == "__main__":
    main()
