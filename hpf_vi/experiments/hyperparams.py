import ast
import os

from hpf_vi.models.hpf_parallel import HPF_Parallel_Config

MODEL_NAME = "HPF_Parallel"


def load_best_hyperparams(filepath='best_hyperparams.txt'):
    """
    Read 'model_name: {config dict}' lines. Returns {} if the file is missing.
    """
    if not os.path.exists(filepath):
        print(f"Warning: {filepath} not found. Using default hyperparameters.")
        return {}

    configs = {}
    with open(filepath, 'r') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("="): continue

            parts = line.split(":", 1)
            if len(parts) == 2:
                model_name = parts[0].strip()
                config_str = parts[1].strip()
                try:
                    config_dict = ast.literal_eval(config_str)
                except (ValueError, SyntaxError) as e:
                    print(f"Error parsing config for {model_name}: {e}")
                    continue
                configs[model_name] = config_dict

    print(f"Loaded hyperparameters from {filepath}")
    return configs


def load_config(filepath='best_hyperparams.txt', **overrides):
    """
    HPF_Parallel_Config from the hyperparameter file, with keyword overrides
    applied on top. Falls back to the dataclass defaults.
    """
    config_dict = dict(load_best_hyperparams(filepath).get(MODEL_NAME, {}))
    if config_dict:
        print(f"Using loaded config: {config_dict}")
    else:
        print("Using default config (fallback)")
    config_dict.update({k: v for k, v in overrides.items() if v is not None})
    return HPF_Parallel_Config(**config_dict)
