"""
User certificate import into the staged JDK trust store.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from stackkit.core.exceptions import CertificateMissingError
from stackkit.core.process import CommandRunner

logger = logging.getLogger(__name__)

TRUSTSTORE_PASSWORD = "changeit"


def read_local_certificates(directory: Path) -> Dict[str, Path]:
    """Map certificate name to its .crt file; empty if directory is missing."""
    directory = Path(directory)
    if not directory.is_dir():
        return {}
    return {p.name[: -len(".crt")]: p for p in directory.iterdir() if p.name.endswith(".crt")}


def keytool_command(jdk_home: Path, alias: str, certificate: Path) -> List[str]:
    return [
        str(jdk_home / "bin" / "keytool"),
        "-import",
        "-trustcacerts",
        "-keystore",
        str(jdk_home / "jre" / "lib" / "security" / "cacerts"),
        "-storepass",
        TRUSTSTORE_PASSWORD,
        "-noprompt",
        "-alias",
        alias,
        "-file",
        str(certificate),
    ]


def install_certificates(
    names: Iterable[str],
    certificates_dir: Path,
    jdk_home: Path,
    runner: Optional[CommandRunner] = None,
    env: Optional[Dict[str, str]] = None,
) -> List[str]:
    """
    Import each named certificate into the JDK's cacerts.

    A certificate that keytool refuses is only warned about; a certificate
    with no .crt file stops the run.

    Returns:
        Names imported successfully

    Raises:
        CertificateMissingError: If <certificates_dir>/<name>.crt is missing
    """
    runner = runner or CommandRunner()
    names = list(names)
    if not names:
        return []

    local = read_local_certificates(certificates_dir)
    imported = []
    for name in names:
        if name not in local:
            logger.error(f"File {name}.crt not found in directory '{certificates_dir}'")
            raise CertificateMissingError(name, certificates_dir)

        logger.info(f"----> installing user certificate '{name}' to TrustStore ... ")
        try:
            result = runner.capture(keytool_command(jdk_home, name, local[name]), env=env)
        except OSError as e:
            logger.warning(f"Error installing user certificate '{name}' to TrustStore: {e}")
            continue

        if result.output:
            logger.info(result.output)
        if not result.success:
            logger.warning(
                f"Error installing user certificate '{name}' to TrustStore: "
                f"keytool exited with {result.returncode}"
            )
            continue
        imported.append(name)

    return imported


__all__ = ["install_certificates", "read_local_certificates", "keytool_command"]
