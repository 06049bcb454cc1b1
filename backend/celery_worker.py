from __future__ import annotations

from sharebox.worker import celery_app


def main() -> None:
    celery_app.worker_main(argv=["worker", "--beat", "--loglevel=info", "-P", "solo"])


if __name__ == "__main__":
    main()
