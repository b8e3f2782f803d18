"""Click subcommands for the sidecar CLI."""
