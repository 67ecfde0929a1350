"""
AI Risk Scoring - advisory suspicion scores from an external LLM.

The model is a black box behind an OpenAI-compatible chat-completions
endpoint. Any failure of that call (no key, network error, rate limit,
malformed reply) degrades to the local rule-based analysis; callers never see
the error. Scores are advisory and never change a transaction's ingestion flag.
"""
import json
import logging
import time
from collections import Counter
from typing import Any, Dict, List

import pandas as pd
import requests

from .errors import ExternalServiceError
from .ingest.flagging import FlaggingEngine

SYSTEM_PROMPT = (
    "You are a gas station loss prevention expert. Analyze transactions for fraud, theft, "
    "and suspicious employee behavior. Focus on patterns specific to gas station environments."
)

ANALYSIS_PROMPT = """Analyze this transaction for suspicious activity.

Common fraud: employee voids, fake refunds, manual discounts, no-sales to pocket cash.
Red flags: multiple voids by the same employee, refunds without receipts, manual price
overrides, transactions during shift changes or unusual hours, repetitive amounts.

TRANSACTION:
{transaction}

EMPLOYEE CONTEXT:
{context}

RECENT TRANSACTIONS (up to 50):
{recent}

Respond in JSON:
{{"isSuspicious": boolean, "suspiciousScore": 0-100, "flags": [string],
  "explanation": string, "recommendations": [string]}}"""

BATCH_SIZE = 10
BATCH_DELAY_SECONDS = 0.1
HIGH_RISK_SCORE = 80
SUSPICIOUS_SCORE = 30


def _jsonable(record: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (v.isoformat() if hasattr(v, "isoformat") else str(v) if v is not None else None)
            for k, v in record.items()}


class RiskAnalyzer:
    """
    LLM-backed transaction risk scorer with a local fallback.
    """

    def __init__(self, api_key: str = None, base_url: str = "https://api.openai.com/v1",
                 model: str = "gpt-4o", timeout: int = 30, session: requests.Session = None,
                 flagging_engine: FlaggingEngine = None, sleep=time.sleep):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()
        self.flagging_engine = flagging_engine or FlaggingEngine()
        self._sleep = sleep

    def analyze(self, transaction: Dict[str, Any], recent: List[Dict[str, Any]] = None) -> Dict[str, Any]:
        recent = recent or []
        try:
            return self._call_model(transaction, recent)
        except ExternalServiceError as e:
            logging.warning(f"Risk scoring unavailable for {transaction.get('transaction_id')}: {e}; using rules")
            return self.fallback_analysis(transaction)

    def analyze_bulk(self, transactions: List[Dict[str, Any]]) -> Dict[str, Any]:
        results = []
        employee_scores: Dict[str, List[int]] = {}
        employee_issues: Dict[str, List[str]] = {}
        flag_counts: Counter = Counter()

        for start in range(0, len(transactions), BATCH_SIZE):
            batch = transactions[start:start + BATCH_SIZE]
            for tx in batch:
                analysis = self.analyze(tx, transactions)
                key = f"{tx.get('employee_name')} ({tx.get('register_id')})"
                employee_scores.setdefault(key, []).append(analysis["suspiciousScore"])
                employee_issues.setdefault(key, []).extend(analysis["flags"])
                flag_counts.update(analysis["flags"])
                results.append({**analysis, "transactionId": tx.get("transaction_id")})

            # Rate limit courtesy between batches
            if start + BATCH_SIZE < len(transactions):
                self._sleep(BATCH_DELAY_SECONDS)

        employee_risks = sorted(
            (
                {
                    "employee": employee,
                    "riskScore": round(sum(scores) / len(scores)),
                    "issues": list(dict.fromkeys(employee_issues[employee]))[:5],
                }
                for employee, scores in employee_scores.items()
            ),
            key=lambda r: r["riskScore"],
            reverse=True,
        )[:10]

        return {
            "results": results,
            "summary": {
                "totalSuspicious": sum(1 for r in results if r["isSuspicious"]),
                "highRiskCount": sum(1 for r in results if r["suspiciousScore"] >= HIGH_RISK_SCORE),
                "commonFlags": [flag for flag, _ in flag_counts.most_common(10)],
                "employeeRisks": employee_risks,
            },
        }

    # ─────────────────────────────────────────────────────────────
    # Model call
    # ─────────────────────────────────────────────────────────────

    def _call_model(self, transaction: Dict[str, Any], recent: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not self.api_key:
            raise ExternalServiceError("No API key configured")

        prompt = ANALYSIS_PROMPT.format(
            transaction=json.dumps(_jsonable(transaction), indent=2),
            context=self.build_context(transaction, recent),
            recent=json.dumps([_jsonable(t) for t in recent[:50]]),
        )
        try:
            response = self.session.post(
                f"{self.base_url}/chat/completions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    "response_format": {"type": "json_object"},
                    "temperature": 0.3,
                    "max_tokens": 1500,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ExternalServiceError(f"Request failed: {e}") from e

        if response.status_code == 429:
            raise ExternalServiceError("Rate limited")
        if response.status_code >= 400:
            raise ExternalServiceError(f"HTTP {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
            analysis = json.loads(content or "{}")
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError(f"Malformed response: {e}") from e
        if not isinstance(analysis, dict):
            raise ExternalServiceError("Malformed response: expected a JSON object")

        return {
            "isSuspicious": bool(analysis.get("isSuspicious", False)),
            "suspiciousScore": self._clamp(analysis.get("suspiciousScore", 0)),
            "flags": analysis["flags"] if isinstance(analysis.get("flags"), list) else [],
            "explanation": analysis.get("explanation") or "No analysis available",
            "recommendations": analysis["recommendations"] if isinstance(analysis.get("recommendations"), list) else [],
            "source": "ai",
        }

    @staticmethod
    def _clamp(score: Any) -> int:
        try:
            value = int(round(float(score)))
        except (TypeError, ValueError):
            value = 0
        return max(0, min(100, value))

    def build_context(self, transaction: Dict[str, Any], recent: List[Dict[str, Any]]) -> str:
        same_employee = [
            t for t in recent
            if t.get("employee_name") == transaction.get("employee_name")
            and t.get("register_id") == transaction.get("register_id")
        ]

        def count(keyword):
            return sum(1 for t in same_employee if keyword in str(t.get("transaction_type", "")).lower())

        return (
            f"Recent voids: {count('void')}\n"
            f"Recent refunds: {count('refund')}\n"
            f"Recent discounts: {count('discount')}\n"
            f"Total recent transactions: {len(same_employee)}\n"
            f"Transaction time: {transaction.get('date')}\n"
            f"Amount: ${transaction.get('amount')}\n"
            f"Type: {transaction.get('transaction_type')}"
        )

    # ─────────────────────────────────────────────────────────────
    # Local rules
    # ─────────────────────────────────────────────────────────────

    def fallback_analysis(self, transaction: Dict[str, Any]) -> Dict[str, Any]:
        flags = []
        score = 0

        tx_type = str(transaction.get("transaction_type") or "").lower()
        amount = self.flagging_engine.to_amount(transaction.get("amount"))
        when = pd.to_datetime(transaction.get("date"), errors="coerce")

        if "void" in tx_type:
            flags.append("Transaction void - requires verification")
            score += 30
        if "refund" in tx_type:
            flags.append("Refund transaction - verify receipt")
            score += 25
        if "discount" in tx_type:
            flags.append("Manual discount applied")
            score += 20
        if amount > 100:
            flags.append("High amount transaction")
            score += 15
        if not pd.isna(when) and (when.hour < 6 or when.hour > 22):
            flags.append("Unusual transaction time")
            score += 10

        decision = self.flagging_engine.flag(transaction)
        if decision["is_flagged"] and decision["reason"] not in flags:
            flags.append(decision["reason"])

        score = self._clamp(score)
        explanation = (
            f"Basic analysis flagged this transaction due to: {', '.join(flags)}"
            if flags else "No rule-based risk indicators found"
        )
        return {
            "isSuspicious": score >= SUSPICIOUS_SCORE,
            "suspiciousScore": score,
            "flags": flags,
            "explanation": explanation,
            "recommendations": ["Manual review recommended", "Check security footage", "Verify with employee"],
            "source": "rules",
        }
