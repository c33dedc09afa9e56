"""
Flash orchestration for disting NT.

FlashOrchestrator drives one device from ROM mode to freshly written
firmware:

    Init -> SdpConnect -> SdpUpload -> SdpJump -> AwaitEnumeration
         -> BootloaderConnect -> Configure -> Erase -> WriteFcb
         -> WriteFirmware -> Reset -> Complete

If no ROM-mode device answers but the flashloader does, the SDP states are
skipped and the run enters at BootloaderConnect. Any failure is terminal:
the run stops at Failed and the remaining phases are never attempted.
"""

import logging
import time
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional

from ..config import FlashConfig
from ..models import DeviceModel, DEFAULT_MODEL
from ..protocol.bootloader import BootloaderController
from ..protocol.sdp import SdpController, TransportFactory
from .errors import DeviceNotFound, FlashError, PhaseFailed, SdpUnavailable
from .messages import FailureCode
from .package import FirmwarePackage
from .progress import EventSink, ProgressModel, Stage
from .results import OperationResult

logger = logging.getLogger(__name__)

OPERATION = "flash_firmware"


class Phase(Enum):
    """States of a flash run."""
    INIT = "Init"
    SDP_CONNECT = "SdpConnect"
    SDP_UPLOAD = "SdpUpload"
    SDP_JUMP = "SdpJump"
    AWAIT_ENUMERATION = "AwaitEnumeration"
    BOOTLOADER_CONNECT = "BootloaderConnect"
    CONFIGURE = "Configure"
    ERASE = "Erase"
    WRITE_FCB = "WriteFcb"
    WRITE_FIRMWARE = "WriteFirmware"
    RESET = "Reset"
    COMPLETE = "Complete"
    FAILED = "Failed"


TERMINAL_PHASES = (Phase.COMPLETE, Phase.FAILED)

_TRANSITIONS: Dict[Phase, tuple] = {
    Phase.INIT: (Phase.SDP_CONNECT, Phase.BOOTLOADER_CONNECT),
    Phase.SDP_CONNECT: (Phase.SDP_UPLOAD, Phase.BOOTLOADER_CONNECT),
    Phase.SDP_UPLOAD: (Phase.SDP_JUMP,),
    Phase.SDP_JUMP: (Phase.AWAIT_ENUMERATION,),
    Phase.AWAIT_ENUMERATION: (Phase.BOOTLOADER_CONNECT,),
    Phase.BOOTLOADER_CONNECT: (Phase.CONFIGURE,),
    Phase.CONFIGURE: (Phase.ERASE,),
    Phase.ERASE: (Phase.WRITE_FCB,),
    Phase.WRITE_FCB: (Phase.WRITE_FIRMWARE,),
    Phase.WRITE_FIRMWARE: (Phase.RESET,),
    Phase.RESET: (Phase.COMPLETE,),
}


class DeviceSession:
    """
    State of one flash run.

    Single-use: once Complete or Failed, no further transition is accepted.

    Attributes:
        phase: Current phase
        skip_sdp: Device was found already running the flashloader
        history: Every phase entered, in order
    """

    def __init__(self, skip_sdp: bool = False):
        self.phase = Phase.INIT
        self.skip_sdp = skip_sdp
        self.history: List[Phase] = [Phase.INIT]
        self.failed_phase: Optional[Phase] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def advance(self, phase: Phase) -> None:
        """
        Move to ``phase``.

        Raises:
            RuntimeError: If the transition is not allowed from the current phase
        """
        if phase is Phase.FAILED:
            self.fail()
            return
        if phase not in _TRANSITIONS.get(self.phase, ()):
            raise RuntimeError(f"Invalid phase transition {self.phase.value} -> {phase.value}")
        self.phase = phase
        self.history.append(phase)

    def fail(self) -> None:
        if self.is_terminal:
            raise RuntimeError(f"Session already ended in {self.phase.value}")
        self.failed_phase = self.phase
        self.phase = Phase.FAILED
        self.history.append(Phase.FAILED)


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records: List[str] = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "nt_flash") -> Iterator[List[str]]:
    """Capture logs for a flash run into a list."""
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    previous_level = target_logger.level
    # Raise to INFO only when quieter; a verbose run keeps its DEBUG records.
    if target_logger.getEffectiveLevel() > logging.INFO:
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


class FlashOrchestrator:
    """
    Runs the flash state machine against one device.

    Each instance owns its own controllers and progress model, so several
    orchestrators never share state.

    Args:
        config: Run configuration
        model: Target device
        sink: Receives every ProgressEvent, synchronously
        sdp_transport_factory: Transport factory for the ROM loader
        bootloader_transport_factory: Transport factory for the flashloader
        sleep: Pause function for the enumeration wait and connect retries

    Example:
        orchestrator = FlashOrchestrator(FlashConfig(dry_run=True), sink=print)
        result = orchestrator.run(load_package_file("distingNT_1.12.0.zip"))
    """

    def __init__(
        self,
        config: FlashConfig,
        model: DeviceModel = DEFAULT_MODEL,
        sink: Optional[EventSink] = None,
        sdp_transport_factory: Optional[TransportFactory] = None,
        bootloader_transport_factory: Optional[TransportFactory] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.model = model
        self.progress = ProgressModel(sink)
        self._sdp_factory = sdp_transport_factory
        self._bl_factory = bootloader_transport_factory
        self._sleep = sleep
        self.session: Optional[DeviceSession] = None

    def _sdp(self) -> SdpController:
        return SdpController(self.config, self.model, self._sdp_factory)

    def _bootloader(self) -> BootloaderController:
        return BootloaderController(self.config, self.model, self._bl_factory, sleep=self._sleep)

    def run(self, package: FirmwarePackage, skip_sdp: bool = False) -> OperationResult:
        """
        Flash ``package`` to the device.

        Args:
            package: Validated firmware package
            skip_sdp: Caller knows the flashloader is already running

        Returns:
            OperationResult; ok only if the run reached Complete.
        """
        session = DeviceSession(skip_sdp=skip_sdp)
        self.session = session
        metadata = {
            "erase_size": package.erase_size(self.model),
            "dry_run": self.config.dry_run,
        }

        with _capture_logs() as logs:
            try:
                self._flash(package, session)
            except FlashError as e:
                session.fail()
                code = e.code
                phase = e.phase if isinstance(e, PhaseFailed) else session.failed_phase.value
                logger.debug(f"Run failed in {phase}: {e}")
                result = OperationResult.failure_of(
                    operation=OPERATION,
                    error=str(e),
                    code=code,
                    model=self.model.name,
                    bytes_len=len(package.firmware_image),
                )
                result.metadata.update(metadata)
                result.metadata["phase"] = phase
            else:
                result = OperationResult.success(
                    operation=OPERATION,
                    model=self.model.name,
                    bytes_len=len(package.firmware_image),
                )
                result.metadata.update(metadata)
                result.metadata["phase"] = session.phase.value
                if self.config.dry_run:
                    result.add_warning("Dry run - no device was touched")

        result.hashes.update(package.sha256())
        result.metadata["phases"] = [p.value for p in session.history]
        result.metadata["skip_sdp"] = session.skip_sdp
        result.logs = logs
        return result

    @contextmanager
    def _phase(
        self,
        session: DeviceSession,
        phase: Phase,
        code: FailureCode,
        label: str,
    ) -> Iterator[None]:
        """Enter ``phase``; any FlashError inside it fails the run with ``code``."""
        session.advance(phase)
        try:
            yield
        except PhaseFailed:
            raise
        except FlashError as e:
            raise PhaseFailed(code, phase.value, f"{label}: {e}") from e

    def _flash(self, package: FirmwarePackage, session: DeviceSession) -> None:
        model = self.model
        progress = self.progress

        logger.info(f"=== Starting {model.name} flash ===")
        progress.on_phase(Stage.START, f"Starting {model.name} flash")

        if not session.skip_sdp:
            sdp = self._sdp()
            try:
                self._run_sdp(package, session, sdp)
            finally:
                sdp.disconnect()

        # Nothing from the SDP phase is reused: the flashloader session below
        # opens against a fresh USB scan.
        bootloader = self._bootloader()
        try:
            self._run_bootloader(package, session, bootloader)
        finally:
            bootloader.disconnect()

        session.advance(Phase.COMPLETE)
        logger.info("=== Flash complete! ===")
        progress.on_phase(Stage.COMPLETE, "Flash complete")

    def _run_sdp(self, package: FirmwarePackage, session: DeviceSession, sdp: SdpController) -> None:
        model = self.model
        progress = self.progress

        session.advance(Phase.SDP_CONNECT)
        progress.on_phase(Stage.SDP_CONNECT, "Connecting to SDP bootloader")
        try:
            sdp.connect()
        except SdpUnavailable as e:
            logger.debug(f"{e}")
            self._check_flashloader_mode(session)
            return

        with self._phase(session, Phase.SDP_UPLOAD, FailureCode.UPLOAD_FAILED, "Flashloader upload failed"):
            progress.on_phase(Stage.SDP_UPLOAD, "Uploading flashloader to RAM")
            sdp.upload_flashloader(model.flashloader_addr, package, progress.segment_callback())

        with self._phase(session, Phase.SDP_JUMP, FailureCode.TRANSPORT_ERROR, "Jump failed"):
            progress.on_phase(Stage.SDP_JUMP, "Starting flashloader")
            outcome = sdp.jump(model.flashloader_addr)
            logger.debug(f"jump-address outcome: {outcome.value}")
            sdp.disconnect()

        session.advance(Phase.AWAIT_ENUMERATION)
        progress.on_phase(Stage.WAIT_ENUM, "Waiting for flashloader to start")
        delay = self.config.enumeration_delay
        if self.config.dry_run:
            logger.debug(f"[DRY RUN] Would wait {delay:.1f}s for USB re-enumeration")
        else:
            logger.debug(f"Waiting {delay:.1f}s for USB re-enumeration")
            self._sleep(delay)

    def _check_flashloader_mode(self, session: DeviceSession) -> None:
        """
        After a failed SDP probe, look for a device already in flashloader mode.

        Raises:
            DeviceNotFound: If the flashloader does not answer either
        """
        self.progress.on_phase(Stage.BL_CHECK, "Checking for flashloader mode")
        probe = self._bootloader()
        try:
            probe.connect()
        except FlashError as e:
            logger.debug(f"Flashloader probe failed: {e}")
            raise DeviceNotFound("Device not found in SDP mode or flashloader mode") from e
        finally:
            probe.disconnect()

        logger.info("Device already in flashloader mode, skipping SDP phase...")
        self.progress.on_phase(Stage.BL_FOUND, "Device already in flashloader mode")
        session.skip_sdp = True

    def _run_bootloader(
        self,
        package: FirmwarePackage,
        session: DeviceSession,
        bootloader: BootloaderController,
    ) -> None:
        model = self.model
        progress = self.progress

        with self._phase(session, Phase.BOOTLOADER_CONNECT, FailureCode.BOOTLOADER_UNAVAILABLE,
                         "Flashloader not available"):
            progress.on_phase(Stage.BL_CONNECT, "Connecting to flashloader")
            bootloader.connect()

        with self._phase(session, Phase.CONFIGURE, FailureCode.CONFIGURE_FAILED,
                         "Flash configuration failed"):
            progress.on_phase(Stage.CONFIGURE, "Configuring flash memory")
            logger.debug("Configuring FlexSPI NOR...")
            bootloader.configure_flexspi(model.flexspi_nor_config)

        erase_size = package.erase_size(model)
        with self._phase(session, Phase.ERASE, FailureCode.ERASE_FAILED, "Flash erase failed"):
            logger.debug(f"Erasing flash region 0x{model.flash_base:08X}, size {erase_size} bytes...")
            progress.on_phase(Stage.ERASE, "Erasing flash region")
            bootloader.erase_region(model.flash_base, erase_size, 0)

        with self._phase(session, Phase.WRITE_FCB, FailureCode.FCB_FAILED, "FCB creation failed"):
            logger.debug("Creating Flash Configuration Block...")
            progress.on_phase(Stage.FCB, "Creating Flash Configuration Block")
            bootloader.configure_flexspi(model.fcb_config)

        with self._phase(session, Phase.WRITE_FIRMWARE, FailureCode.WRITE_FAILED, "Firmware write failed"):
            logger.debug(f"Writing firmware ({len(package.firmware_image)} bytes)...")
            progress.on_phase(Stage.WRITE, "Writing firmware")
            bootloader.write_memory(
                model.firmware_addr,
                package.firmware_image,
                0,
                progress=progress.segment_callback(),
            )

        session.advance(Phase.RESET)
        progress.on_phase(Stage.RESET, "Resetting device")
        outcome = bootloader.reset()
        logger.debug(f"reset outcome: {outcome.value}")
        bootloader.disconnect()
