import os

from dotenv import load_dotenv

from llmirc.cli.commands import app

# Load .env file from ~/.llmirc/ if it exists
# Precedence: existing env vars > .env file (override=False)
load_dotenv(os.path.expanduser("~/.llmirc/.env"), override=False)

if __name__ == "__main__":
    app()
