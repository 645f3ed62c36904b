import json
import os
from typing import Dict, Any
from dataclasses import dataclass, asdict, fields


@dataclass
class HarnessConfig:
    """Configuration for the trust store synchronization harness"""
    tsl_provider_uri: str = "http://localhost:8083"
    ocsp_responder_uri: str = "http://localhost:8084"
    tsl_provider_port: int = 8083
    ocsp_responder_port: int = 8084

    # Test object (SUT)
    sut_host: str = "localhost"
    sut_port: int = 8443
    use_case_script: str = ""
    use_case_timeout_seconds: int = 60

    # Timing budgets configured in the test object
    tsl_download_interval_seconds: int = 60
    tsl_download_interval_extra_seconds: int = 5
    tsl_processing_time_seconds: int = 3
    ocsp_processing_time_seconds: int = 1
    ocsp_grace_period_seconds: int = 30
    grace_period_extra_delay_seconds: int = 5
    ocsp_timeout_seconds: int = 10
    timeout_delta_milliseconds: int = 1500

    # Harness behaviour
    poll_interval_milliseconds: int = 100
    max_endpoint_repetitions: int = 4
    seq_nr_file: str = "./out/tsl_seq_nr.txt"

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_milliseconds / 1000.0

    @property
    def download_wait_seconds(self) -> int:
        """Download interval plus a buffer; used as ceiling for TSL download waits"""
        return self.tsl_download_interval_seconds + self.tsl_download_interval_extra_seconds

    @property
    def ocsp_wait_seconds(self) -> int:
        return self.ocsp_grace_period_seconds + self.grace_period_extra_delay_seconds

    @property
    def short_ocsp_delay_milliseconds(self) -> int:
        # just inside the SUT's OCSP timeout
        return self.ocsp_timeout_seconds * 1000 - self.timeout_delta_milliseconds

    @property
    def long_ocsp_delay_milliseconds(self) -> int:
        return self.ocsp_timeout_seconds * 1000 + self.timeout_delta_milliseconds


class ConfigManager:
    """Manages saving and loading of configuration"""

    def __init__(self, config_file: str = "truststore_tester.json"):
        self.config_file = config_file
        self.config = HarnessConfig()

    def load_config(self) -> HarnessConfig:
        """Load configuration from file; a missing file leaves the defaults"""
        if os.path.exists(self.config_file):
            with open(self.config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            self.update_from_dict(data)
        return self.config

    def save_config(self, config: HarnessConfig) -> None:
        """Save configuration to file (atomic)"""
        config_dir = os.path.dirname(self.config_file) or "."
        os.makedirs(config_dir, exist_ok=True)

        tmp_path = self.config_file + ".tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(asdict(config), f, indent=2)
        os.replace(tmp_path, self.config_file)
        self.config = config

    def update_from_dict(self, data: Dict[str, Any]) -> None:
        """Update config from dictionary; unknown keys are ignored"""
        known = {f.name for f in fields(HarnessConfig)}
        for key, value in data.items():
            if key in known:
                setattr(self.config, key, value)
