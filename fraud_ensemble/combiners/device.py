"""
Device combiner: channel, device and network technology read together.

Flags automation (scripted user agents, machine-speed bursts), geo/tech
conflicts (an ATM abroad right after a distant transaction, a browser user
agent on an ATM) and missing technical metadata.
"""
from fraud_ensemble.components.base import Assessment, Combiner
from fraud_ensemble.components.scoring import flag, pair_correlation


DEFAULT_TECH_PATTERNS = {
    "suspicious_user_agents": ["bot", "crawler", "spider", "python", "curl", "postman", "automated", "test"],
    "automation_agents": ["python", "curl", "postman", "automated"],
    "trusted_browsers": ["chrome", "firefox", "safari"],
    "anonymizer_markers": ["tor", "proxy", "vpn"],
    "private_prefixes": ["10.", "192.168.", "172."],
}


class DeviceCombiner(Combiner):
    COMPONENT_ID = "device_combiner"
    DESCRIPTION = "Combines channel, device and network technology signals"

    def default_side_tables(self):
        return {"tech_patterns": {k: list(v) for k, v in DEFAULT_TECH_PATTERNS.items()}}

    # ------------------------------------------------------------------
    # Technology patterns
    # ------------------------------------------------------------------

    @staticmethod
    def channel_consistency(v) -> float:
        if v.historical_transaction_count < 5:
            return 0.5
        consistency = 0.5
        if v.channel in ("physical", "atm"):
            consistency += 0.3
        elif v.channel == "online":
            consistency += 0.1
        elif v.channel == "phone":
            consistency -= 0.2
        return max(consistency, 0.1)

    def device_trust(self, v) -> float:
        trust = 0.5
        if v.device_info:
            trust += 0.2
            agent = v.device_info.lower()
            if any(b in agent for b in self.tech_patterns["trusted_browsers"]):
                trust += 0.2
            if any(m in agent for m in ("bot", "crawler", "automated")):
                trust -= 0.6
        if v.ip_address:
            trust += 0.1
        return min(max(trust, 0.1), 1.0)

    def ip_risk(self, v) -> float:
        if not v.ip_address:
            return 0.7
        address = v.ip_address.lower()
        risk = 0.1
        if any(address.startswith(p) for p in self.tech_patterns["private_prefixes"]):
            risk += 0.4
        if any(m in address for m in self.tech_patterns["anonymizer_markers"]) \
                or v.proxy_detected or v.vpn_detected:
            risk += 0.5
        return min(risk, 1.0)

    @staticmethod
    def geo_tech_conflicts(v) -> float:
        conflict = 0.0
        if v.channel == "atm" and not v.is_domestic and v.distance_from_prev > 1000:
            conflict += 0.6
        if v.channel == "online" and not v.is_domestic:
            conflict += 0.3
        if v.channel == "physical" and v.device_info:
            conflict += 0.2
        if v.channel == "atm" and v.device_info and "mozilla" in v.device_info.lower():
            conflict += 0.5
        return min(conflict, 1.0)

    @staticmethod
    def session_anomaly(v) -> float:
        if v.channel != "online":
            return 0.0
        session = 0.0
        if v.transactions_last_hour > 5:
            session += 0.5
        if v.time_since_prev_transaction is not None and v.time_since_prev_transaction < 1:
            session += 0.4
        if v.is_night_transaction:
            session += 0.2
        return min(session, 1.0)

    def automation(self, v) -> float:
        automation = 0.0
        if v.device_info and any(a in v.device_info.lower() for a in self.tech_patterns["automation_agents"]):
            automation += 0.7
        if v.transactions_last_hour > 3 and 60 / v.transactions_last_hour < 2:
            automation += 0.5
        if v.amount % 100 == 0 and v.transactions_last_24h > 5:
            automation += 0.3
        return min(automation, 1.0)

    @staticmethod
    def tech_consistency(v) -> float:
        consistency = 0.5
        if v.device_info and v.ip_address:
            consistency += 0.3
        if v.channel == "online" and v.device_info:
            consistency += 0.2
        if v.channel == "atm" and not v.device_info:
            consistency += 0.2
        return min(consistency, 1.0)

    def has_suspicious_user_agent(self, device_info) -> bool:
        if not device_info:
            return False
        agent = device_info.lower()
        return any(p in agent for p in self.tech_patterns["suspicious_user_agents"])

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def prepare_features(self, ctx):
        v = ctx.input
        channel, device, country = ctx.t1("channel"), ctx.t1("device"), ctx.t1("country")
        location, velocity = ctx.t1("location"), ctx.t1("velocity")
        online = v.channel == "online"
        conflicts = self.geo_tech_conflicts(v)
        automation = self.automation(v)
        ip_risk = self.ip_risk(v)

        tech_risk = channel * 0.25 + device * 0.25 + conflicts * 0.2 + automation * 0.15 + ip_risk * 0.15

        return {
            "channel_score": channel,
            "device_score": device,
            "country_score": country,
            "location_score": location,
            "velocity_score": velocity,
            "channel_consistency": self.channel_consistency(v),
            "device_trust_level": self.device_trust(v),
            "ip_risk_level": ip_risk,
            "geo_tech_conflicts": conflicts,
            "session_analysis": self.session_anomaly(v),
            "automation_indicators": automation,
            "tech_consistency": self.tech_consistency(v),
            "has_device_info": flag(bool(v.device_info)),
            "has_ip_address": flag(bool(v.ip_address)),
            "is_online_transaction": flag(online),
            "is_mobile_transaction": flag(v.channel == "mobile"),
            "is_physical_transaction": flag(v.channel == "physical"),
            "is_atm_transaction": flag(v.channel == "atm"),
            "missing_tech_info": flag(not v.device_info and not v.ip_address),
            "suspicious_user_agent": flag(self.has_suspicious_user_agent(v.device_info)),
            "rapid_online_activity": flag(online and v.transactions_last_hour > 5),
            "night_online_activity": flag(online and v.is_night_transaction),
            "online_no_device_info": flag(online and not v.device_info),
            "international_online": flag(online and not v.is_domestic),
            "client_tech_experience": min(v.client_age_days / 365, 1.0),
            "transaction_diversity": min(v.historical_transaction_count / 50, 1.0),
            "tech_combined_score": (channel + device + country) / 3,
            "channel_device_correlation": pair_correlation(channel, device),
            "device_location_correlation": pair_correlation(device, location),
            "tech_risk_index": min(tech_risk, 1.0),
        }

    def heuristic_assessment(self, ctx, features):
        score = features["tech_risk_index"]
        patterns = []
        reasons = []

        checks = (
            ("automation", features["automation_indicators"] > 0.6, 0.3, "Automation indicators"),
            ("geo_tech_conflict", features["geo_tech_conflicts"] > 0.5, 0.2, "Geographic/technology conflict"),
            ("suspicious_user_agent", features["suspicious_user_agent"], 0.25, "Suspicious user agent"),
            ("missing_tech_info", features["missing_tech_info"], 0.2, "Missing technical information"),
            ("rapid_online_activity", features["rapid_online_activity"], 0.15, "Rapid online activity"),
            ("night_online_activity", features["night_online_activity"], 0.1, "Online activity at night"),
        )
        for name, hit, bonus, reason in checks:
            if hit:
                score += bonus
                patterns.append(name)
                reasons.append(reason)

        return Assessment(
            score=min(score, 1.0),
            confidence=0.8,
            reasons=reasons,
            patterns=patterns,
            sub_scores={
                "device_trust": features["device_trust_level"],
                "ip_risk": features["ip_risk_level"],
                "geo_tech_conflicts": features["geo_tech_conflicts"],
                "session_risk": features["session_analysis"],
                "automation_risk": features["automation_indicators"],
                "tech_consistency": features["tech_consistency"],
                "tech_risk_index": features["tech_risk_index"],
            },
        )
