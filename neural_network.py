"""
Neural Policy for GridLife.

A fixed-topology feedforward network that maps an agent's flattened
sensory vector to a probability for each action.

Forward pass (per agent update):
  1. y = W·x + b for every layer
  2. ReLU on the hidden layers, output layer left linear
  3. Softmax (max-subtracted) → action probabilities

Policies evolve by mutation only; the single learning rule is a tiny
reward-weighted nudge of the output unit that was acted upon.
"""

from dataclasses import dataclass

import numpy as np

from errors import ConfigurationError, DeserializationError
from rng import SimRandom
from config import POLICY_SIZES, INIT_STD, NUDGE_THRESHOLD, LEARNING_RATE

SERIAL_VERSION = "1.0"


@dataclass
class Layer:
    """One dense layer: weights[out, in] and biases[out]."""
    weights: np.ndarray
    biases:  np.ndarray

    @property
    def inputs(self) -> int:
        return self.weights.shape[1]

    @property
    def neurons(self) -> int:
        return self.weights.shape[0]

    def copy(self) -> "Layer":
        return Layer(self.weights.copy(), self.biases.copy())


def _describe_stats(values: np.ndarray) -> dict:
    ordered = np.sort(values)
    return {
        "count":  int(values.size),
        "min":    float(ordered[0]),
        "max":    float(ordered[-1]),
        "mean":   float(values.mean()),
        "std":    float(values.std()),
        "median": float(ordered[values.size // 2]),
    }


class NeuralPolicy:
    """
    Dense ReLU network with a softmax head.
    Topology: input → hidden… → actions
    """

    def __init__(self, sizes=POLICY_SIZES, rng: SimRandom = None,
                 layers: list = None):
        sizes = tuple(int(s) for s in sizes)
        if len(sizes) < 2:
            raise ConfigurationError(
                f"a policy needs at least input and output sizes, got {sizes}")
        if any(s < 1 for s in sizes):
            raise ConfigurationError(f"layer sizes must be positive, got {sizes}")

        self.rng = rng if rng is not None else SimRandom()

        if layers is not None:
            self._check_layers(layers, sizes)
            self.layers = layers
        else:
            self.layers = [
                Layer(self.rng.gaussian_array((sizes[i], sizes[i - 1])) * INIT_STD,
                      self.rng.gaussian_array(sizes[i]) * INIT_STD)
                for i in range(1, len(sizes))
            ]

    @staticmethod
    def _check_layers(layers: list, sizes: tuple):
        if not layers:
            raise ConfigurationError("a policy needs at least one layer")
        for i in range(1, len(layers)):
            if layers[i].inputs != layers[i - 1].neurons:
                raise ConfigurationError(
                    f"layer {i} expects {layers[i].inputs} inputs but layer "
                    f"{i - 1} has {layers[i - 1].neurons} neurons")
        actual = (layers[0].inputs,) + tuple(l.neurons for l in layers)
        if actual != sizes:
            raise ConfigurationError(
                f"layers describe {actual} but sizes {sizes} were given")

    @property
    def sizes(self) -> tuple:
        return (self.layers[0].inputs,) + tuple(l.neurons for l in self.layers)

    @property
    def input_size(self) -> int:
        return self.layers[0].inputs

    @property
    def output_size(self) -> int:
        return self.layers[-1].neurons

    # ──────────────────────────────────────────────────────────────────────────

    def forward(self, inputs) -> np.ndarray:
        """
        Run one forward pass.

        Args:
            inputs: sequence of length input_size

        Returns:
            float64 array of shape (output_size,) summing to 1
        """
        activation = np.asarray(inputs, dtype=np.float64)
        if activation.shape != (self.input_size,):
            raise ConfigurationError(
                f"expected input of length {self.input_size}, "
                f"got shape {activation.shape}")

        last = len(self.layers) - 1
        for i, layer in enumerate(self.layers):
            activation = layer.weights @ activation + layer.biases
            if i != last:
                activation = np.maximum(activation, 0.0)

        return self._softmax(activation)

    @staticmethod
    def _softmax(logits: np.ndarray) -> np.ndarray:
        exps = np.exp(logits - logits.max())
        return exps / exps.sum()

    # ──────────────────────────────────────────────────────────────────────────
    # Evolution
    # ──────────────────────────────────────────────────────────────────────────

    def _perturb(self, values: np.ndarray, rate: float,
                 strength: float) -> np.ndarray:
        mask = self.rng.random(values.shape) < rate
        out  = values.copy()
        hits = int(mask.sum())
        if hits:
            out[mask] += self.rng.gaussian_array(hits) * strength
        return out

    def mutate(self, rate: float, strength: float) -> "NeuralPolicy":
        """
        Return a mutated copy. Each weight and bias independently, with
        probability `rate`, receives Gaussian(0, strength) noise.
        """
        layers = [Layer(self._perturb(l.weights, rate, strength),
                        self._perturb(l.biases,  rate, strength))
                  for l in self.layers]
        return NeuralPolicy(self.sizes, rng=self.rng, layers=layers)

    def clone(self) -> "NeuralPolicy":
        """Exact, independent copy."""
        return NeuralPolicy(self.sizes, rng=self.rng,
                            layers=[l.copy() for l in self.layers])

    def apply_output_nudge(self, inputs, action_index: int, reward: float,
                           learning_rate: float = LEARNING_RATE):
        """
        Reward-weighted adjustment of the output unit that was acted upon.

        weights[action_index][i] += learning_rate * reward * input[i] for
        every incoming weight i of that unit, and its bias moves by
        learning_rate * reward. The output layer only has as many incoming
        weights as the last hidden layer has neurons, so only that many
        leading input values are used. Nothing else moves.
        """
        if abs(reward) < NUDGE_THRESHOLD:
            return
        out = self.layers[-1]
        x = np.asarray(inputs, dtype=np.float64).ravel()
        if x.size < out.inputs:
            raise ConfigurationError(
                f"nudge needs at least {out.inputs} input values, got {x.size}")
        out.weights[action_index] += learning_rate * reward * x[:out.inputs]
        out.biases[action_index]  += learning_rate * reward

    # ──────────────────────────────────────────────────────────────────────────
    # Introspection
    # ──────────────────────────────────────────────────────────────────────────

    def get_architecture(self) -> dict:
        structure = []
        total = 0
        for layer in self.layers:
            info = {
                "neurons": layer.neurons,
                "inputs":  layer.inputs,
                "weights": int(layer.weights.size),
                "biases":  int(layer.biases.size),
            }
            info["parameters"] = info["weights"] + info["biases"]
            total += info["parameters"]
            structure.append(info)
        return {"layers": len(self.layers), "structure": structure,
                "total_parameters": total}

    def calculate_similarity(self, other: "NeuralPolicy") -> float:
        """1 - mean absolute parameter difference (0 when shapes differ)."""
        if len(self.layers) != len(other.layers):
            return 0.0
        total_diff, total_params = 0.0, 0
        for a, b in zip(self.layers, other.layers):
            if a.weights.shape != b.weights.shape:
                return 0.0
            total_diff   += float(np.abs(a.weights - b.weights).sum())
            total_diff   += float(np.abs(a.biases - b.biases).sum())
            total_params += a.weights.size + a.biases.size
        return max(0.0, 1.0 - total_diff / total_params)

    def get_weight_stats(self) -> dict:
        weights = np.concatenate([l.weights.ravel() for l in self.layers])
        biases  = np.concatenate([l.biases.ravel() for l in self.layers])
        return {
            "weights": _describe_stats(weights),
            "biases":  _describe_stats(biases),
            "total_parameters": int(weights.size + biases.size),
        }

    def summary(self) -> str:
        arch = self.get_architecture()
        lines = [f"NeuralPolicy ({arch['total_parameters']} parameters)"]
        for i, info in enumerate(arch["structure"]):
            lines.append(f"  L{i}: {info['inputs']:>4} → {info['neurons']:<4}"
                         f"  params={info['parameters']}")
        return "\n".join(lines)

    # ──────────────────────────────────────────────────────────────────────────
    # Serialization
    # ──────────────────────────────────────────────────────────────────────────

    def serialize(self) -> dict:
        """JSON-friendly dump of the architecture and every parameter."""
        return {
            "version":      SERIAL_VERSION,
            "architecture": self.get_architecture(),
            "layers": [{"weights": l.weights.tolist(),
                        "biases":  l.biases.tolist()}
                       for l in self.layers],
        }

    @classmethod
    def deserialize(cls, data: dict, expected_sizes=None,
                    rng: SimRandom = None) -> "NeuralPolicy":
        """
        Rebuild a policy from serialize() output.

        Raises DeserializationError when the payload is malformed, when the
        stored parameters disagree with the stored architecture, or when
        `expected_sizes` is given and does not match.
        """
        if not isinstance(data, dict):
            raise DeserializationError(
                f"serialized policy must be a dict, got {type(data).__name__}")
        for key in ("layers", "architecture"):
            if key not in data:
                raise DeserializationError(f"serialized policy is missing '{key}'")
        try:
            structure = data["architecture"]["structure"]
        except (KeyError, TypeError) as exc:
            raise DeserializationError(
                "serialized architecture has no 'structure'") from exc
        if not isinstance(structure, list):
            raise DeserializationError(
                f"architecture structure must be a list, got "
                f"{type(structure).__name__}")

        raw_layers = data["layers"]
        if not isinstance(raw_layers, list) or not raw_layers:
            raise DeserializationError("serialized policy has no layers")
        if len(raw_layers) != len(structure):
            raise DeserializationError(
                f"architecture lists {len(structure)} layers but "
                f"{len(raw_layers)} were stored")

        layers = []
        for i, (raw, info) in enumerate(zip(raw_layers, structure)):
            try:
                weights = np.array(raw["weights"], dtype=np.float64)
                biases  = np.array(raw["biases"],  dtype=np.float64)
                neurons, inputs = int(info["neurons"]), int(info["inputs"])
            except (KeyError, TypeError, ValueError) as exc:
                raise DeserializationError(
                    f"layer {i}: malformed parameters ({exc})") from exc
            if neurons < 1 or inputs < 1:
                raise DeserializationError(
                    f"layer {i}: sizes must be positive, got "
                    f"{neurons} neurons and {inputs} inputs")
            if weights.shape != (neurons, inputs):
                raise DeserializationError(
                    f"layer {i}: weights shape {weights.shape} does not match "
                    f"architecture ({neurons}, {inputs})")
            if biases.shape != (neurons,):
                raise DeserializationError(
                    f"layer {i}: biases shape {biases.shape} does not match "
                    f"{neurons} neurons")
            if layers and layers[-1].neurons != inputs:
                raise DeserializationError(
                    f"layer {i}: expects {inputs} inputs but layer {i - 1} "
                    f"has {layers[-1].neurons} neurons")
            if not (np.all(np.isfinite(weights)) and np.all(np.isfinite(biases))):
                raise DeserializationError(f"layer {i}: non-finite parameters")
            layers.append(Layer(weights, biases))

        sizes = (layers[0].inputs,) + tuple(l.neurons for l in layers)
        if expected_sizes is not None and tuple(expected_sizes) != sizes:
            raise DeserializationError(
                f"policy architecture {sizes} is incompatible with "
                f"expected {tuple(expected_sizes)}")
        try:
            return cls(sizes, rng=rng, layers=layers)
        except ConfigurationError as exc:
            raise DeserializationError(str(exc)) from exc
