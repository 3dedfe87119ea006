"""Change a password. Run from project root: python scripts/update_password.py <username> <newPassword>"""
import sys
from pathlib import Path

# Add project root to path so tagger imports work
_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_root))

from tagger.cli import update_password_command

if __name__ == "__main__":
    update_password_command()
