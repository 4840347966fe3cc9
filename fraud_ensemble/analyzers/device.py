"""
Device analyzer: device fingerprint (user agent) and IP address hygiene.

Missing metadata on a remote channel is itself a signal; automation tools,
headless browsers, hosting ranges and anonymizing networks raise the score.
"""
import re

from fraud_ensemble.components.base import Assessment, VariableAnalyzer
from fraud_ensemble.components.scoring import flag


DEFAULT_DEVICE_PATTERNS = {
    "suspicious_user_agents": [
        "bot", "crawler", "spider", "scraper", "automated",
        "python", "curl", "wget", "postman", "test",
    ],
    "rare_systems": ["linux", "unix", "bsd", "solaris", "unknown"],
    "rare_browsers": ["lynx", "opera mini", "phantom", "headless"],
}

DEFAULT_IP_PATTERNS = {
    "private_prefixes": ["10.", "192.168.", "172."],
    "hosting_markers": ["aws", "azure", "gcp", "digital", "vultr"],
    "anonymizer_markers": ["tor", "onion"],
}

_IPV4 = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$")


def is_valid_ipv4(address: str) -> bool:
    match = _IPV4.match(address.strip())
    return bool(match) and all(int(part) <= 255 for part in match.groups())


class DeviceAnalyzer(VariableAnalyzer):
    COMPONENT_ID = "device_analyzer"
    DESCRIPTION = "Scores device fingerprint and IP address risk"

    def default_side_tables(self):
        return {
            "device_patterns": {k: list(v) for k, v in DEFAULT_DEVICE_PATTERNS.items()},
            "ip_patterns": {k: list(v) for k, v in DEFAULT_IP_PATTERNS.items()},
        }

    # ------------------------------------------------------------------
    # Metadata inspection
    # ------------------------------------------------------------------

    def inspect_device(self, device_info):
        """Returns (risk, suspicious_pattern_count) for a user agent string."""
        if not device_info:
            return 0.8, 0
        agent = device_info.lower()
        risk = 0.1
        hits = 0
        for marker in self.device_patterns["suspicious_user_agents"]:
            if marker in agent:
                risk += 0.3
                hits += 1
        for marker in self.device_patterns["rare_systems"]:
            if marker in agent:
                risk += 0.2
                hits += 1
        for marker in self.device_patterns["rare_browsers"]:
            if marker in agent:
                risk += 0.3
                hits += 1
        if len(agent) < 20 or len(agent) > 500:
            risk += 0.2
            hits += 1
        return min(risk, 1.0), hits

    def inspect_ip(self, ip_address, proxy_detected=False, vpn_detected=False):
        """Returns (risk, suspicious_pattern_count) for an IP address."""
        hits = 0
        if not ip_address:
            risk = 0.7
        else:
            address = ip_address.lower()
            risk = 0.1
            if any(address.startswith(p) for p in self.ip_patterns["private_prefixes"]):
                risk += 0.4
                hits += 1
            if any(m in address for m in self.ip_patterns["hosting_markers"]):
                risk += 0.3
                hits += 1
            if any(m in address for m in self.ip_patterns["anonymizer_markers"]):
                risk += 0.6
                hits += 1
            if not is_valid_ipv4(address) and ":" not in address:
                risk += 0.2
                hits += 1
        if proxy_detected:
            risk += 0.3
            hits += 1
        if vpn_detected:
            risk += 0.3
            hits += 1
        return min(risk, 1.0), hits

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def prepare_features(self, ctx):
        v = ctx.input
        device_risk, device_hits = self.inspect_device(v.device_info)
        ip_risk, ip_hits = self.inspect_ip(v.ip_address, v.proxy_detected, v.vpn_detected)
        return {
            "has_device_info": flag(bool(v.device_info)),
            "has_ip_address": flag(bool(v.ip_address)),
            "device_risk": device_risk,
            "ip_risk": ip_risk,
            "device_pattern_count": min(device_hits / 5, 1.0),
            "ip_pattern_count": min(ip_hits / 5, 1.0),
            "is_online": flag(v.channel in ("online", "mobile")),
            "is_anonymized": flag(v.proxy_detected or v.vpn_detected),
            "is_high_amount": flag(v.amount > 5000),
            "is_night_transaction": flag(v.is_night_transaction),
            "is_international": flag(not v.is_domestic),
            "client_age_factor": min(v.client_age_days / 365, 1.0),
        }

    def heuristic_assessment(self, ctx, features):
        v = ctx.input
        _, device_hits = self.inspect_device(v.device_info)
        _, ip_hits = self.inspect_ip(v.ip_address, v.proxy_detected, v.vpn_detected)
        risky_device = features["device_risk"] > 0.5 or features["ip_risk"] > 0.5
        score = 0.0
        reasons = []

        if not v.device_info and not v.ip_address:
            score += 0.7
            reasons.append("No device or IP information")
        elif not v.device_info:
            score += 0.4
            reasons.append("No device information")
        elif not v.ip_address:
            score += 0.3
            reasons.append("No IP information")

        if device_hits:
            score += min(device_hits * 0.2, 0.6)
            reasons.append(f"Suspicious device patterns: {device_hits}")
        if ip_hits:
            score += min(ip_hits * 0.2, 0.6)
            reasons.append(f"Suspicious IP patterns: {ip_hits}")

        if v.channel in ("online", "mobile") and (not v.device_info or not v.ip_address):
            score += 0.4
            reasons.append("Remote transaction with incomplete device metadata")

        if v.amount > 5000 and risky_device:
            score += 0.3
            reasons.append("High amount from a risky device")

        if v.client_age_days < 30 and risky_device:
            score += 0.3
            reasons.append("New client on a risky device")

        if not v.is_domestic and v.is_night_transaction and not v.device_info:
            score += 0.4
            reasons.append("International night transaction without device information")

        return Assessment(score=min(score, 1.0), confidence=0.7, reasons=reasons)

    def learned_confidence(self, ctx, features, base):
        confidence = 0.6
        if features["has_device_info"]:
            confidence += 0.2
        if features["has_ip_address"]:
            confidence += 0.1
        if features["client_age_factor"] > 0.2:
            confidence += 0.1
        return min(confidence, 1.0)

    def band_reasons(self, ctx, features, score):
        reasons = []
        if score > 0.7:
            if not features["has_device_info"]:
                reasons.append("Missing device information")
            if features["is_anonymized"]:
                reasons.append("Anonymizing network detected")
            if features["device_risk"] > 0.6:
                reasons.append("Suspicious device fingerprint")
        elif score > 0.5:
            if not features["has_ip_address"]:
                reasons.append("Missing IP information")
            if features["ip_risk"] > 0.5:
                reasons.append("Suspicious IP address")
        elif score > 0.3:
            if features["device_pattern_count"] > 0:
                reasons.append("Unusual device characteristics")
        return reasons
