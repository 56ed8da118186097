"""Upload workout FIT files from a local directory to TrainingPeaks."""
