"""Create a user. Run from project root: python scripts/init_db.py [username] [password] [role]"""
import sys
from pathlib import Path

# Add project root to path so tagger imports work
_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_root))

from tagger.cli import create_user_command

if __name__ == "__main__":
    create_user_command()
