"""Run the operator with ``python -m exoscale_iam_operator``."""

import kopf

from . import main as _operator  # noqa: F401


def main() -> None:
    kopf.run(clusterwide=True)


if __name__ == "__main__":
    main()
