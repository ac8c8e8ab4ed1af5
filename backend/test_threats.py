"""Tests for the Threat entity and its property bags."""
import random

import pytest

from threats import (
    Threat,
    ThreatDomain,
    ThreatType,
    PROPERTY_TYPES,
    QuantumProperties,
    RoboticProperties,
    WMDProperties,
    build_properties,
    random_properties,
)


def make_threat(domain=ThreatDomain.CYBER, threat_type=ThreatType.REAL, severity=0.5, **kwargs):
    return Threat(id="threat-0", domain=domain, type=threat_type, severity=severity, **kwargs)


class TestThreatState:
    """Tests for clamped mutators and dirty tracking."""

    def test_constructor_clamps(self):
        threat = make_threat(severity=3.0, visibility=-1.0)
        assert threat.severity == 1.0
        assert threat.visibility == 0.0

    def test_string_enums_are_coerced(self):
        threat = Threat(id="t", domain="BIO", type="FAKE", severity=0.2)
        assert threat.domain is ThreatDomain.BIO
        assert threat.type is ThreatType.FAKE

    def test_setters_clamp_and_mark_dirty(self):
        threat = make_threat()
        threat.dirty = False
        threat.set_severity(1.7)
        assert threat.severity == 1.0
        assert threat.dirty
        threat.set_spread_rate(-0.4)
        threat.set_investigation_progress(2.0)
        assert threat.spread_rate == 0.0
        assert threat.investigation_progress == 1.0

    def test_properties_must_match_domain(self):
        with pytest.raises(ValueError):
            make_threat(domain=ThreatDomain.BIO, properties=WMDProperties())

    def test_dict_properties_are_built(self):
        threat = make_threat(domain=ThreatDomain.WMD, properties={"yield_kt": 40.0})
        assert isinstance(threat.properties, WMDProperties)
        assert threat.properties.yield_kt == 40.0


class TestLifecycle:
    """Tests for investigation and mitigation."""

    def test_investigate_steps(self):
        threat = make_threat(visibility=0.1)
        threat.investigate()
        assert threat.investigation_progress == pytest.approx(0.25)
        assert threat.visibility == pytest.approx(0.2)

    def test_fake_threat_ends_when_fully_investigated(self):
        faction = type("F", (), {"id": "mitigators"})()
        threat = make_threat(threat_type=ThreatType.FAKE)
        for _ in range(3):
            threat.investigate(faction)
        assert not threat.is_mitigated
        threat.investigate(faction)
        assert threat.is_mitigated
        assert threat.was_mitigated_by_player
        assert threat.mitigated_by == "mitigators"

    def test_real_threat_survives_investigation(self):
        threat = make_threat()
        for _ in range(5):
            threat.investigate()
        assert threat.investigation_progress == 1.0
        assert not threat.is_mitigated

    def test_mitigate_requires_full_investigation(self):
        threat = make_threat()
        assert threat.mitigate() is False
        threat.set_investigation_progress(1.0)
        assert threat.mitigate() is True
        assert threat.is_mitigated

    def test_mitigate_rejects_fake(self):
        threat = make_threat(threat_type=ThreatType.FAKE, investigation_progress=1.0)
        assert threat.mitigate() is False

    def test_mitigation_is_terminal(self):
        threat = make_threat(investigation_progress=1.0)
        threat.mitigate(type("F", (), {"id": "mitigators"})())
        threat.mark_mitigated("technocrats")
        assert threat.is_mitigated
        assert threat.mitigated_by == "mitigators"


class TestDomainOperations:
    """Tests for the domain-specific player operations."""

    def test_sabotage_robotics(self):
        threat = make_threat(domain=ThreatDomain.ROBOT,
                             properties=RoboticProperties(collective_intelligence=0.2))
        assert threat.sabotage_robotics() is True
        assert threat.properties.collective_intelligence == 0.0

    def test_sabotage_robotics_wrong_domain(self):
        assert make_threat().sabotage_robotics() is False

    def test_induce_decoherence(self):
        threat = make_threat(domain=ThreatDomain.QUANTUM, properties=QuantumProperties(coherence_time=5.0))
        threat.induce_decoherence()
        assert threat.properties.coherence_time == pytest.approx(3.0)

    def test_deploy_counter_intel(self):
        threat = make_threat(domain=ThreatDomain.INFO, spread_rate=0.5)
        threat.deploy_counter_intel()
        assert threat.spread_rate == pytest.approx(0.3)


class TestPropertyBags:
    """Tests for bag construction."""

    def test_every_domain_has_a_bag(self):
        assert set(PROPERTY_TYPES) == set(ThreatDomain)

    def test_build_properties_ignores_unknown_keys(self):
        props = build_properties(ThreatDomain.RAD, {"contamination": 0.9, "bogus": 1})
        assert props.contamination == 0.9

    def test_random_properties_match_domain(self):
        rng = random.Random(3)
        for domain in ThreatDomain:
            assert isinstance(random_properties(domain, rng), PROPERTY_TYPES[domain])

    def test_to_dict_round_trip(self):
        threat = make_threat(domain=ThreatDomain.QUANTUM, properties=QuantumProperties(coherence_time=4.0))
        restored = Threat.from_dict(threat.to_dict())
        assert restored.domain is ThreatDomain.QUANTUM
        assert restored.properties.coherence_time == 4.0
        assert restored.severity == threat.severity
