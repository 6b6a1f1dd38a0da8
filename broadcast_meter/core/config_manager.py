import json
import os
import logging


class ConfigManager:
    def __init__(self, config_path="config.json"):
        self.config_path = config_path
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config = self.load_config()

    def load_config(self):
        """Loads configuration from JSON file, falling back to defaults."""
        if not os.path.exists(self.config_path):
            self.logger.info("No config file found, using defaults.")
            return self._default_config()

        try:
            with open(self.config_path, 'r') as f:
                loaded = json.load(f)
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to load config: {e}")
            return self._default_config()

        if not isinstance(loaded, dict):
            self.logger.error("Config root must be a JSON object, using defaults.")
            return self._default_config()

        # Fill in keys missing from older files
        config = self._default_config()
        for section, values in loaded.items():
            if isinstance(values, dict) and isinstance(config.get(section), dict):
                config[section].update(values)
            else:
                config[section] = values
        return config

    def save_config(self):
        """Saves current configuration to JSON file."""
        try:
            with open(self.config_path, 'w') as f:
                json.dump(self.config, f, indent=4)
            self.logger.info("Config saved.")
        except OSError as e:
            self.logger.error(f"Failed to save config: {e}")

    def _default_config(self):
        return {
            "audio": {
                "input_device": None,
                "sample_rate": 48000,
                "block_size": 1024,
                "input_channels": "stereo",
            },
            "meter": {
                "ppm_detector": "rc",
                "integration_mode": "streaming",
                "k_weighting": "auto",
                "lra_history_seconds": 60.0,
                "true_peak_limit": -1.0,
                "target_lufs": -23.0,
                "probe_name": "Broadcast Meter",
                "probe_location": "",
                "log_level": "INFO",
            },
        }

    def get_audio_config(self):
        """Returns a dictionary of audio configuration."""
        return self.config.get("audio", self._default_config()["audio"])

    def set_audio_config(self, input_name, sample_rate, block_size, input_channels="stereo"):
        """Updates the audio configuration. `input_channels` is "stereo", "left" or "right"."""
        if "audio" not in self.config:
            self.config["audio"] = {}

        self.config["audio"]["input_device"] = input_name
        self.config["audio"]["sample_rate"] = sample_rate
        self.config["audio"]["block_size"] = block_size
        self.config["audio"]["input_channels"] = input_channels
        self.save_config()

    def get_meter_config(self):
        return self.config.get("meter", self._default_config()["meter"])

    def set_meter_config(self, **values):
        """Updates meter settings, e.g. set_meter_config(ppm_detector="window")."""
        meter = self.config.setdefault("meter", {})
        unknown = set(values) - set(self._default_config()["meter"])
        if unknown:
            raise KeyError(f"Unknown meter settings: {', '.join(sorted(unknown))}")
        meter.update(values)
        self.save_config()
