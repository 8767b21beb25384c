from .completed_trip import CompletedTrip
from .model_parameters import ModelParameters
from .model_config import ModelConfig
from .training_run import TrainingRun
from .prediction_record import PredictionRecord


__all__ = ["CompletedTrip", "ModelParameters", "ModelConfig", "TrainingRun", "PredictionRecord"]
