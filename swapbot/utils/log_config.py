from swapbot.utils.logger import logger_manager, log_function

log_function = log_function

# Package-level logger; modules should prefer setup_logger(__name__)
logger = logger_manager.setup_logger("swapbot")
