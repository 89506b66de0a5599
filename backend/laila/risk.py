"""Risk classification for parsed commands"""

# Substrings that make a terminal command high risk
DANGEROUS_TERMINAL_SUBSTRINGS = [
    "rm -rf", "rm -r", "rm ", "sudo", "mkfs", "dd ", "format", "> /dev",
    "chmod 777", "chmod -r", "shutdown", "reboot", "kill -9", "killall",
    "clean", "reset", "wipe", "purge", "erase", "diskutil", "fdisk", "newfs",
    "launchctl", "defaults delete", "defaults write", "dscl", "systemsetup",
    "nvram", "csrutil", "spctl", "tmutil delete", "srm",
]

DELETE_INDICATORS = ["rm ", "delete"]

# Types with a dedicated executor never run model-supplied shell text
FIXED_RISK = {
    "open_app": "low",
    "system_info": "low",
    "play_youtube": "low",
    "send_whatsapp": "medium",
}

def is_dangerous_terminal_command(command: str) -> bool:
    lowered = command.lower()
    return any(token in lowered for token in DANGEROUS_TERMINAL_SUBSTRINGS)

def classify_risk(command_type: str, command: str) -> str:
    """Assess risk level of a command"""
    if command_type in FIXED_RISK:
        return FIXED_RISK[command_type]
    elif command_type == "file_op":
        lowered = command.lower()
        return "high" if any(token in lowered for token in DELETE_INDICATORS) else "medium"
    elif command_type == "terminal":
        return "high" if is_dangerous_terminal_command(command) else "medium"
    else:
        raise ValueError(f"Unknown command type: {command_type}")
