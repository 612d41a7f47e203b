"""
Main controller module that initializes and runs the Connect queue quick connect operator.
"""

from . import handlers  # This will import and register all kopf handlers

# Run with: kopf run -m quickconnect_controller.controller
