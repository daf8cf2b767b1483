# zkfuzz/globals.py
import threading

# Set by the CLI signal handler; campaigns stop between variants once it is set.
shutdown_event = threading.Event()
