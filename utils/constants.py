# utils/constants.py

# --- Top-Level Result Directories ---
# Sequentially numbered for proper sorting with clear, self-explanatory names

CONFIG_DIR = "01_RunConfiguration"             # Run config, metadata, seeds
DATA_QUALITY_DIR = "02_DataQualityChecks"      # Loaded data stats and schema
SPLITS_DIR = "03_DataSplits"                   # Train/test split and balance report
PREPROCESSING_DIR = "04_Preprocessing"         # Fitted pipeline summary
TRAINED_MODELS_DIR = "05_TrainedModels"        # Fitted models and training metadata
PREDICTIONS_DIR = "06_Predictions"             # Predictions joined with truth
EVALUATION_DIR = "07_PerformanceMetrics"       # Metrics, curves, train/test gaps
CROSS_VALIDATION_DIR = "08_CrossValidation"    # Per-fold and aggregate metrics
DIAGNOSTICS_DIR = "09_DiagnosticPlots"         # Scatter, ROC, gain and fold plots

# --- File Names ---
CONFIG_USED_FILE = "config_used.json"
CONFIG_HASH_FILE = "config_hash.txt"
RUN_METADATA_FILE = "run_metadata.json"
LOG_FILE = "workflow.log"

# --- Modeling Vocabulary ---
MODE_CLASSIFICATION = "classification"
MODE_REGRESSION = "regression"
MODES = (MODE_CLASSIFICATION, MODE_REGRESSION)

OUTPUT_CLASS = "class"
OUTPUT_PROBABILITY = "probability"

CORRELATION_SCOPE_FEATURES = "features"
CORRELATION_SCOPE_ALL_NUMERIC = "all_numeric"

# --- Defaults ---
DEFAULT_TRAIN_FRACTION = 0.75
DEFAULT_CORRELATION_THRESHOLD = 0.9
DEFAULT_NUMERIC_STRATA_BINS = 4
DEFAULT_CV_FOLDS = 10

# --- Prediction Table Columns ---
TRUTH_COLUMN = "truth"
PREDICTION_COLUMN = "prediction"
PROBABILITY_PREFIX = "prob_"
