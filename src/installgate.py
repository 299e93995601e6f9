"""installgate - malware gate in front of npm and pnpm installs.

    Returns:
        int: Exit code
"""
from args import parse_args
from cli_guard import run_command


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    run_command(args)


if __name__ == "__main__":
    main()
