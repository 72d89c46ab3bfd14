import sys
import os

# Add project root to sys.path so tests can import top-level modules like 'models', 'resolver', 'gateways', etc.
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# fake gateways shared by the tests live next to them
HERE = os.path.abspath(os.path.dirname(__file__))
if HERE not in sys.path:
    sys.path.insert(0, HERE)
