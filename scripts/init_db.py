"""Initialize the templatestore database."""

from templatestore.config import load_config


def main() -> None:
    config = load_config()
    print(f"Database initialized at {config.engine.url.render_as_string(hide_password=True)}.")


if __name__ == "__main__":
    main()
