"""pr-worklist core: classification-aware PR/MR worklist across Bitbucket, GitHub and GitLab.

Usage (from the repo root):
  - `python3 -m worklist --demo-data --once`
  - `python3 -m worklist --watch -v`
"""

__version__ = "0.3.0"
