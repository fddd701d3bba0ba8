import subprocess
import logging

logger = logging.getLogger("kubefoundry-api")


def run_command(command, check=True, timeout=None):
    """Run a command and return the completed process.

    `command` may be a list of arguments or a shell string.
    """
    shell = isinstance(command, str)
    printable = command if shell else " ".join(command)
    logger.info(f"Running command: {printable}")
    result = subprocess.run(
        command, shell=shell, check=False, text=True, capture_output=True, timeout=timeout
    )

    if result.stdout:
        logger.debug(f"Command stdout:\n{result.stdout}")
    if result.stderr:
        logger.debug(f"Command stderr:\n{result.stderr}")

    if check and result.returncode != 0:
        raise subprocess.CalledProcessError(
            result.returncode, command, output=result.stdout, stderr=result.stderr
        )
    return result
