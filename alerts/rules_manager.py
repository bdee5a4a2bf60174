"""Alert rule definitions loaded from YAML into the rule table."""
import logging
import yaml
from pathlib import Path

from models.alerts import ActionSpec, AlertRule
from models.enums import Condition, Metric

logger = logging.getLogger("powerwatch.alerts.rules")


class RulesManager:
    """Seeds rule definitions from a YAML file.

    Only the definition fields are written; trigger state (triggered, last
    trigger time, trigger count) already stored for a rule is preserved.
    """

    def __init__(self, db, rules_path="config/alert_rules.yaml"):
        self.db = db
        self.rules_path = Path(rules_path)

    def load(self):
        if not self.rules_path.exists():
            logger.warning(f"Alert rules file not found: {self.rules_path}")
            return []
        with open(self.rules_path) as f:
            data = yaml.safe_load(f) or {}
        rules = self._parse_rules(data.get("rules", []))
        logger.info(f"Loaded {len(rules)} rules from {self.rules_path}")
        return rules

    def _parse_rules(self, raw_rules):
        rules = []
        valid_metrics = {m.value for m in Metric}
        valid_conditions = {c.value for c in Condition}
        for r in raw_rules:
            if r.get("metric") not in valid_metrics:
                logger.warning(f"Invalid metric in rule {r.get('id')}: {r.get('metric')}")
                continue
            if r.get("condition") not in valid_conditions:
                logger.warning(f"Invalid condition in rule {r.get('id')}: {r.get('condition')}")
                continue
            rules.append(AlertRule(
                id=str(r["id"]),
                name=r.get("name", str(r["id"])),
                metric=r["metric"],
                condition=r["condition"],
                threshold=float(r["threshold"]),
                cooldown_seconds=int(r.get("cooldown_seconds", 300)),
                active=r.get("active", True),
                message=r.get("message", ""),
                actions=[ActionSpec.from_dict(a) for a in r.get("actions", [])],
            ))
        return rules

    def sync(self):
        """Upsert every rule from the file. Returns the number written."""
        rules = self.load()
        for rule in rules:
            self.db.save_rule(rule)
        return len(rules)

    def get_all_rules(self):
        return self.db.get_rules()

    def get_active_rules(self):
        return self.db.get_rules(active_only=True)

    def get_rule(self, rule_id):
        return self.db.get_rule(rule_id)

    def acknowledge(self, rule_id):
        return self.db.acknowledge_rule(rule_id)

    def toggle(self, rule_id):
        return self.db.toggle_rule_active(rule_id)

    def set_active(self, rule_id, active):
        return self.db.set_rule_active(rule_id, active)

    def delete(self, rule_id):
        """Remove a rule definition; its alert history is kept."""
        return self.db.delete_rule(rule_id)
