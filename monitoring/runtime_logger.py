"""
Prediction Log
==============

Appends every prediction the engine makes to disk for later analysis.

Outputs:
- predictions.jsonl: the full result dictionary (all probability triples,
  reasoning snapshot, resolved names and the exact settings used), so any
  stored prediction can be replayed with the same settings
- predictions_summary.csv: one line per prediction for quick review
"""

import csv
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from engine_config import Settings
from match_data import Fixture

logger = logging.getLogger(__name__)

OUTCOMES = ('H', 'D', 'A')

CSV_HEADERS = [
    'timestamp', 'home_team', 'away_team', 'match_date',
    'prob_home_win', 'prob_draw', 'prob_away_win',
    'nn_home', 'lr_home', 'poisson_home',
    'temperature', 'predicted_outcome', 'actual_outcome', 'prediction_correct',
]


def predicted_outcome(probs) -> str:
    """Most likely outcome code; ties go to the earlier of H, D, A."""
    best = max(range(3), key=lambda i: (probs[i], -i))
    return OUTCOMES[best]


class RuntimeLogger:
    """JSONL + CSV log of prediction results."""

    def __init__(self, log_dir: str = 'logs'):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.json_log_path = self.log_dir / 'predictions.jsonl'
        self.csv_log_path = self.log_dir / 'predictions_summary.csv'

        if not self.csv_log_path.exists():
            self._initialize_csv()

    def _initialize_csv(self):
        with open(self.csv_log_path, 'w', newline='', encoding='utf-8') as f:
            csv.writer(f).writerow(CSV_HEADERS)

    def log_prediction(self,
                       fixture: Fixture,
                       result: Dict,
                       actual_result: Optional[str] = None) -> Dict:
        """
        Append one prediction.

        Args:
            fixture: The fixture as requested
            result: PredictionResult.to_dict() output
            actual_result: Optional 'H' / 'D' / 'A' once the match is played

        Returns:
            The stored log entry
        """
        timestamp = datetime.now().isoformat()
        ensemble = result['ensembleProbs']
        predicted = predicted_outcome(ensemble)
        match_date = fixture.match_date.isoformat() if fixture.match_date else None

        log_entry = {
            'timestamp': timestamp,
            'fixture': {
                'HomeTeam': fixture.home_team,
                'AwayTeam': fixture.away_team,
                'MatchDate': match_date,
            },
            'result': result,
            'predicted_outcome': predicted,
        }

        if actual_result is not None:
            if actual_result not in OUTCOMES:
                raise ValueError(f"actual_result must be one of {OUTCOMES}, got {actual_result!r}")
            prediction_correct = predicted == actual_result
            log_entry['evaluation'] = {
                'actual_outcome': actual_result,
                'prediction_correct': prediction_correct,
            }
        else:
            prediction_correct = None

        with open(self.json_log_path, 'a', encoding='utf-8') as f:
            f.write(json.dumps(log_entry) + '\n')

        with open(self.csv_log_path, 'a', newline='', encoding='utf-8') as f:
            csv.writer(f).writerow([
                timestamp, result['resolvedHomeTeam'], result['resolvedAwayTeam'], match_date or '',
                f"{ensemble[0]:.3f}", f"{ensemble[1]:.3f}", f"{ensemble[2]:.3f}",
                f"{result['nnProbs'][0]:.3f}", f"{result['lrProbs'][0]:.3f}",
                f"{result['poissonProbs'][0]:.3f}",
                result['settingsUsed']['temperature'],
                predicted,
                actual_result or '',
                prediction_correct if prediction_correct is not None else '',
            ])

        logger.debug(f"Logged prediction {fixture.home_team} vs {fixture.away_team}")
        return log_entry

    def get_recent_predictions(self, n: int = 10) -> List[Dict]:
        """The N most recent log entries, oldest first."""
        if not self.json_log_path.exists():
            return []

        predictions = []
        with open(self.json_log_path, 'r', encoding='utf-8') as f:
            for line in f:
                if line.strip():
                    predictions.append(json.loads(line))

        return predictions[-n:]

    @staticmethod
    def replay_request(entry: Dict):
        """
        (Fixture, Settings) that reproduce a stored prediction against the
        same trained engine.
        """
        fixture = Fixture.from_dict(entry['fixture'])
        settings = Settings.from_dict(entry['result']['settingsUsed'])
        return fixture, settings

    def accuracy(self, n: int = 50) -> Optional[float]:
        """Share of evaluated predictions among the last N that were correct."""
        evaluated = [p for p in self.get_recent_predictions(n) if 'evaluation' in p]
        if not evaluated:
            return None
        correct = sum(1 for p in evaluated if p['evaluation']['prediction_correct'])
        return correct / len(evaluated)
