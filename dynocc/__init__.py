from dynocc.forward import ForwardLikelihood, occasion_partition
from dynocc.colext import DynamicOccupancy
